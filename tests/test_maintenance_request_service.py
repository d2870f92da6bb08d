import unittest

from app.database import SessionLocal
from app.models.audit_log import AuditLog
from app.models.equipment import EquipmentStatus
from app.models.maintenance_request import MaintenanceRequest, RequestStage, RequestType, RequestPriority
from app.models.role import RoleName
from app.models.team import TeamMember
from app.schemas.maintenance_request import (
    RequestCreateRequest, RequestUpdateRequest, StageTransitionRequest,
)
from app.services.lifecycle import utcnow
from app.services.maintenance_request_service import (
    maintenance_request_service, compare_and_set_stage, technician_clause,
)
from app.utils.exceptions import (
    ConflictException, ForbiddenException, InvalidTransitionException,
    NotFoundException, ValidationException,
)
from tests.base import DatabaseTestCase

service = maintenance_request_service


class RequestServiceTestCase(DatabaseTestCase):

    def setUp(self):
        super().setUp()
        self.equipment = self.make_equipment(
            maintenanceTeamId=self.team.id,
            technicianId=self.tech.id,
            categoryId=self.category.id,
        )

    def audit_count(self, action: str) -> int:
        return self.db.query(AuditLog).filter(
            AuditLog.entityType == "MaintenanceRequest",
            AuditLog.action == action,
        ).count()


# ─── Create ───────────────────────────────────────────────────────────────────
class TestCreateRequest(RequestServiceTestCase):

    def test_defaults_come_from_equipment(self):
        data = service.create_request(
            self.db, RequestCreateRequest(subject="Strange noise", equipmentId=self.equipment.id), self.employee,
        )
        self.assertEqual(data["stage"], "NEW")
        self.assertEqual(data["requestType"], "CORRECTIVE")
        self.assertEqual(data["priority"], "MEDIUM")
        self.assertEqual(data["team"]["id"], self.team.id)
        self.assertEqual(data["technician"]["id"], self.tech.id)
        self.assertEqual(data["category"]["id"], self.category.id)
        self.assertEqual(data["createdBy"]["id"], self.employee.id)
        self.assertFalse(data["isOverdue"])
        self.assertEqual(self.audit_count("CREATE"), 1)

    def test_preventive_requires_scheduled_date(self):
        body = RequestCreateRequest(subject="Quarterly check", equipmentId=self.equipment.id,
                                    requestType=RequestType.PREVENTIVE)
        with self.assertRaises(ValidationException):
            service.create_request(self.db, body, self.manager)
        self.assertEqual(self.db.query(MaintenanceRequest).count(), 0)

    def test_preventive_with_date(self):
        body = RequestCreateRequest(subject="Quarterly check", equipmentId=self.equipment.id,
                                    requestType=RequestType.PREVENTIVE,
                                    scheduledDate=utcnow() + self.days(7))
        data = service.create_request(self.db, body, self.manager)
        self.assertEqual(data["requestType"], "PREVENTIVE")
        self.assertIsNotNone(data["scheduledDate"])

    def test_short_subject_is_rejected_by_schema(self):
        with self.assertRaises(ValueError):
            RequestCreateRequest(subject="ab", equipmentId=self.equipment.id)

    def test_scrapped_equipment_is_rejected(self):
        scrapped = self.make_equipment(status=EquipmentStatus.SCRAPPED)
        with self.assertRaises(ValidationException):
            service.create_request(self.db, RequestCreateRequest(subject="Fix it", equipmentId=scrapped.id),
                                   self.employee)

    def test_equipment_from_other_company_is_not_found(self):
        other = self.make_company("Globex", "GLOBEX")
        foreign = self.make_equipment(company=other)
        with self.assertRaises(NotFoundException):
            service.create_request(self.db, RequestCreateRequest(subject="Fix it", equipmentId=foreign.id),
                                   self.employee)

    def test_employee_cannot_pick_technician(self):
        body = RequestCreateRequest(subject="Fix it", equipmentId=self.equipment.id, technicianId=self.other_tech.id)
        with self.assertRaises(ForbiddenException):
            service.create_request(self.db, body, self.employee)

    def test_deactivated_default_technician_leaves_request_unassigned(self):
        retired = self.make_user(self.company, RoleName.TECHNICIAN, "Rita Retired", is_active=False)
        press = self.make_equipment(name="Press", maintenanceTeamId=self.team.id, technicianId=retired.id)

        data = service.create_request(self.db, RequestCreateRequest(subject="Broken belt", equipmentId=press.id),
                                      self.employee)
        self.assertIsNone(data["technician"])
        self.assertEqual(data["team"]["id"], self.team.id)
        self.assertEqual(data["stage"], "NEW")

    def test_explicit_inactive_technician_is_not_found(self):
        retired = self.make_user(self.company, RoleName.TECHNICIAN, "Rita Retired", is_active=False)
        body = RequestCreateRequest(subject="Broken belt", equipmentId=self.equipment.id, technicianId=retired.id)
        with self.assertRaises(NotFoundException):
            service.create_request(self.db, body, self.manager)
        self.assertEqual(self.db.query(MaintenanceRequest).count(), 0)


# ─── Stage transitions ────────────────────────────────────────────────────────
class TestTransitionStage(RequestServiceTestCase):

    def test_start_work(self):
        r = self.make_request(self.equipment, self.employee)
        data = service.transition_stage(self.db, r.id, StageTransitionRequest(stage=RequestStage.IN_PROGRESS),
                                        self.tech)
        self.assertEqual(data["stage"], "IN_PROGRESS")
        self.assertIsNotNone(data["startDate"])
        self.assertEqual(data["technician"]["id"], self.tech.id)
        self.assertEqual(self.equipment.status, EquipmentStatus.UNDER_MAINTENANCE)
        self.assertEqual(self.audit_count("TRANSITION"), 1)

    def test_repaired_without_duration_leaves_request_untouched(self):
        r = self.make_request(self.equipment, self.employee, stage=RequestStage.IN_PROGRESS, technicianId=self.tech.id)
        with self.assertRaises(ValidationException):
            service.transition_stage(self.db, r.id, StageTransitionRequest(stage=RequestStage.REPAIRED), self.tech)
        self.db.refresh(r)
        self.assertEqual(r.stage, RequestStage.IN_PROGRESS)
        self.assertIsNone(r.completionDate)

    def test_repaired_returns_equipment_to_active(self):
        self.equipment.status = EquipmentStatus.UNDER_MAINTENANCE
        self.db.commit()
        r = self.make_request(self.equipment, self.employee, stage=RequestStage.IN_PROGRESS, technicianId=self.tech.id)

        data = service.transition_stage(
            self.db, r.id, StageTransitionRequest(stage=RequestStage.REPAIRED, duration=1.5), self.tech,
        )
        self.assertEqual(data["stage"], "REPAIRED")
        self.assertEqual(data["duration"], 1.5)
        self.assertIsNotNone(data["completionDate"])
        self.assertEqual(self.equipment.status, EquipmentStatus.ACTIVE)

    def test_equipment_stays_under_maintenance_while_other_work_is_open(self):
        self.equipment.status = EquipmentStatus.UNDER_MAINTENANCE
        self.db.commit()
        r = self.make_request(self.equipment, self.employee, stage=RequestStage.IN_PROGRESS)
        self.make_request(self.equipment, self.employee, stage=RequestStage.IN_PROGRESS, subject="Second job")

        service.transition_stage(self.db, r.id, StageTransitionRequest(stage=RequestStage.REPAIRED, duration=2),
                                 self.manager)
        self.assertEqual(self.equipment.status, EquipmentStatus.UNDER_MAINTENANCE)

    def test_repairing_clears_overdue(self):
        r = self.make_request(self.equipment, self.employee, requestType=RequestType.PREVENTIVE,
                              scheduledDate=utcnow() - self.days(1))
        self.assertTrue(service.get_request(self.db, r.id, self.manager)["isOverdue"])

        service.transition_stage(self.db, r.id, StageTransitionRequest(stage=RequestStage.IN_PROGRESS), self.tech)
        data = service.transition_stage(
            self.db, r.id, StageTransitionRequest(stage=RequestStage.REPAIRED, duration=2), self.tech,
        )
        self.assertFalse(data["isOverdue"])
        self.assertEqual(data["duration"], 2)
        self.assertIsNotNone(data["completionDate"])

    def test_scrap_does_not_scrap_equipment(self):
        r = self.make_request(self.equipment, self.employee)
        data = service.transition_stage(self.db, r.id, StageTransitionRequest(stage=RequestStage.SCRAP),
                                        self.manager)
        self.assertEqual(data["stage"], "SCRAP")
        self.assertEqual(self.equipment.status, EquipmentStatus.ACTIVE)

    def test_closed_requests_cannot_move(self):
        r = self.make_request(self.equipment, self.employee, stage=RequestStage.REPAIRED, duration=1)
        with self.assertRaises(InvalidTransitionException):
            service.transition_stage(self.db, r.id, StageTransitionRequest(stage=RequestStage.IN_PROGRESS),
                                     self.admin)

    def test_new_cannot_jump_to_repaired(self):
        r = self.make_request(self.equipment, self.employee)
        with self.assertRaises(InvalidTransitionException):
            service.transition_stage(self.db, r.id,
                                     StageTransitionRequest(stage=RequestStage.REPAIRED, duration=1), self.manager)

    def test_employee_cannot_transition(self):
        r = self.make_request(self.equipment, self.employee)
        with self.assertRaises(ForbiddenException):
            service.transition_stage(self.db, r.id, StageTransitionRequest(stage=RequestStage.IN_PROGRESS),
                                     self.employee)

    def test_same_stage_is_a_noop(self):
        r = self.make_request(self.equipment, self.employee)
        data = service.transition_stage(self.db, r.id, StageTransitionRequest(stage=RequestStage.NEW), self.manager)
        self.assertEqual(data["stage"], "NEW")
        self.assertEqual(self.audit_count("TRANSITION"), 0)

    def test_stale_expected_stage_is_a_conflict(self):
        r = self.make_request(self.equipment, self.employee, stage=RequestStage.IN_PROGRESS)
        body = StageTransitionRequest(stage=RequestStage.SCRAP, expectedStage=RequestStage.NEW)
        with self.assertRaises(ConflictException):
            service.transition_stage(self.db, r.id, body, self.manager)

    def test_concurrent_move_loses_the_race(self):
        r = self.make_request(self.equipment, self.employee)
        # Another writer scraps the request behind this session's back
        self.db.query(MaintenanceRequest).filter(MaintenanceRequest.id == r.id).update(
            {"stage": RequestStage.SCRAP}, synchronize_session=False,
        )
        self.db.commit()
        self.assertEqual(r.stage, RequestStage.NEW)

        with self.assertRaises(ConflictException):
            service.transition_stage(self.db, r.id, StageTransitionRequest(stage=RequestStage.IN_PROGRESS), self.tech)

        self.db.refresh(r)
        self.assertEqual(r.stage, RequestStage.SCRAP)
        self.assertIsNone(r.startDate)
        self.assertEqual(self.equipment.status, EquipmentStatus.ACTIVE)
        self.assertEqual(self.audit_count("TRANSITION"), 0)

    def test_compare_and_set_stage(self):
        r = self.make_request(self.equipment, self.employee)
        self.assertFalse(compare_and_set_stage(self.db, r.id, RequestStage.IN_PROGRESS,
                                               {"stage": RequestStage.REPAIRED}))
        self.assertTrue(compare_and_set_stage(self.db, r.id, RequestStage.NEW,
                                              {"stage": RequestStage.IN_PROGRESS}))
        self.assertFalse(compare_and_set_stage(self.db, r.id, RequestStage.NEW,
                                               {"stage": RequestStage.SCRAP}))
        self.db.commit()
        self.db.refresh(r)
        self.assertEqual(r.stage, RequestStage.IN_PROGRESS)

    def test_compare_and_set_stage_checks_technician(self):
        r = self.make_request(self.equipment, self.employee, stage=RequestStage.IN_PROGRESS,
                              technicianId=self.other_tech.id)
        self.assertFalse(compare_and_set_stage(self.db, r.id, RequestStage.IN_PROGRESS,
                                               {"technicianId": self.tech.id}, technician_clause(None)))
        self.assertTrue(compare_and_set_stage(self.db, r.id, RequestStage.IN_PROGRESS,
                                              {"technicianId": self.tech.id}, technician_clause(self.other_tech.id)))
        self.db.commit()
        self.db.refresh(r)
        self.assertEqual(r.technicianId, self.tech.id)


# ─── Assignment ───────────────────────────────────────────────────────────────
class TestAssignTechnician(RequestServiceTestCase):

    def setUp(self):
        super().setUp()
        self.request = self.make_request(self.equipment, self.employee, teamId=self.team.id)

    def test_manager_assignment_starts_new_request(self):
        data = service.assign_technician(self.db, self.request.id, self.manager, self.tech.id)
        self.assertEqual(data["technician"]["id"], self.tech.id)
        self.assertEqual(data["stage"], "IN_PROGRESS")
        self.assertIsNotNone(data["startDate"])
        self.assertEqual(self.audit_count("ASSIGN"), 1)

    def test_manager_can_reassign_in_progress(self):
        self.db.query(MaintenanceRequest).filter(MaintenanceRequest.id == self.request.id).update(
            {"stage": RequestStage.IN_PROGRESS, "technicianId": self.tech.id}, synchronize_session=False,
        )
        self.db.commit()
        self.db.refresh(self.request)

        data = service.assign_technician(self.db, self.request.id, self.manager, self.other_tech.id)
        self.assertEqual(data["technician"]["id"], self.other_tech.id)
        self.assertEqual(data["stage"], "IN_PROGRESS")

    def test_technician_self_assigns(self):
        data = service.assign_technician(self.db, self.request.id, self.tech)
        self.assertEqual(data["technician"]["id"], self.tech.id)

    def test_technician_cannot_take_over(self):
        self.request.technicianId = self.tech.id
        self.db.add(TeamMember(teamId=self.team.id, userId=self.other_tech.id))
        self.db.commit()
        self.db.expire_all()
        with self.assertRaises(ForbiddenException):
            service.assign_technician(self.db, self.request.id, self.other_tech)

    def test_technician_outside_team_is_forbidden(self):
        with self.assertRaises(ForbiddenException):
            service.assign_technician(self.db, self.request.id, self.other_tech)

    def test_employee_is_forbidden(self):
        with self.assertRaises(ForbiddenException):
            service.assign_technician(self.db, self.request.id, self.employee, self.tech.id)
        self.db.refresh(self.request)
        self.assertIsNone(self.request.technicianId)

    def test_assignee_must_be_technician_or_manager(self):
        with self.assertRaises(NotFoundException) as ctx:
            service.assign_technician(self.db, self.request.id, self.manager, self.employee.id)
        self.assertEqual(ctx.exception.message, "Technician not found")

    def test_inactive_technician_is_not_assignable(self):
        retired = self.make_user(self.company, RoleName.TECHNICIAN, "Rita Retired", is_active=False)
        with self.assertRaises(NotFoundException):
            service.assign_technician(self.db, self.request.id, self.manager, retired.id)

    def test_technician_from_other_company_is_not_found(self):
        other = self.make_company("Globex", "GLOBEX")
        foreign_tech = self.make_user(other, RoleName.TECHNICIAN, "Fred Foreign")
        with self.assertRaises(NotFoundException):
            service.assign_technician(self.db, self.request.id, self.manager, foreign_tech.id)

    def test_closed_request_cannot_be_assigned(self):
        self.request.stage = RequestStage.SCRAP
        self.db.commit()
        with self.assertRaises(InvalidTransitionException):
            service.assign_technician(self.db, self.request.id, self.manager, self.tech.id)

    def test_technician_assigning_someone_else_on_closed_request_is_forbidden(self):
        self.request.stage = RequestStage.REPAIRED
        self.request.duration = 2
        self.db.commit()
        with self.assertRaises(ForbiddenException):
            service.assign_technician(self.db, self.request.id, self.tech, self.other_tech.id)

    def test_self_assign_loses_to_concurrent_assignment(self):
        r = self.make_request(self.equipment, self.employee, stage=RequestStage.IN_PROGRESS,
                              teamId=self.team.id, startDate=utcnow())
        self.db.add(TeamMember(teamId=self.team.id, userId=self.other_tech.id))
        self.db.commit()
        self.assertIsNone(r.technicianId)

        # A second session claims the card first; this session still holds the unassigned copy
        other = SessionLocal()
        try:
            other.query(MaintenanceRequest).filter(MaintenanceRequest.id == r.id).update(
                {"technicianId": self.other_tech.id}, synchronize_session=False,
            )
            other.commit()
        finally:
            other.close()
        self.assertIsNone(r.technicianId)

        with self.assertRaises(ConflictException):
            service.assign_technician(self.db, r.id, self.tech)

        self.db.refresh(r)
        self.assertEqual(r.technicianId, self.other_tech.id)
        self.assertEqual(self.audit_count("ASSIGN"), 0)


# ─── Read, update, delete ─────────────────────────────────────────────────────
class TestVisibilityAndTenancy(RequestServiceTestCase):

    def test_other_company_sees_not_found(self):
        r = self.make_request(self.equipment, self.employee)
        other = self.make_company("Globex", "GLOBEX")
        outsider = self.make_user(other, RoleName.ADMIN, "Oscar Outsider")
        with self.assertRaises(NotFoundException):
            service.get_request(self.db, r.id, outsider)
        data, total = service.list_requests(self.db, outsider, 1, 10)
        self.assertEqual((data, total), ([], 0))

    def test_employee_sees_only_own_requests(self):
        mine = self.make_request(self.equipment, self.employee)
        theirs = self.make_request(self.equipment, self.manager)
        data, total = service.list_requests(self.db, self.employee, 1, 10)
        self.assertEqual(total, 1)
        self.assertEqual(data[0]["id"], mine.id)
        with self.assertRaises(ForbiddenException):
            service.get_request(self.db, theirs.id, self.employee)

    def test_technician_sees_team_requests(self):
        team_request = self.make_request(self.equipment, self.employee, teamId=self.team.id)
        self.make_request(self.equipment, self.employee, teamId=None, subject="Unrouted")
        data, total = service.list_requests(self.db, self.tech, 1, 10)
        self.assertEqual([d["id"] for d in data], [team_request.id])

    def test_list_order_and_overdue_filter(self):
        now = utcnow()
        low = self.make_request(self.equipment, self.employee, priority=RequestPriority.LOW)
        high = self.make_request(self.equipment, self.employee, priority=RequestPriority.HIGH)
        late = self.make_request(self.equipment, self.employee, priority=RequestPriority.LOW,
                                 requestType=RequestType.PREVENTIVE, scheduledDate=now - self.days(2))
        self.make_request(self.equipment, self.employee, stage=RequestStage.REPAIRED, duration=1,
                          scheduledDate=now - self.days(2))

        data, total = service.list_requests(self.db, self.manager, 1, 10, stage=None)
        self.assertEqual(total, 4)
        self.assertEqual([d["id"] for d in data[:2]], [late.id, high.id])
        self.assertEqual(data[-1]["id"], low.id)

        overdue, count = service.list_requests(self.db, self.manager, 1, 10, is_overdue=True)
        self.assertEqual(count, 1)
        self.assertTrue(overdue[0]["isOverdue"])

    def test_kanban_groups_every_stage(self):
        self.make_request(self.equipment, self.employee)
        self.make_request(self.equipment, self.employee, stage=RequestStage.IN_PROGRESS)
        board = service.get_kanban(self.db, self.manager)
        self.assertEqual(set(board), {s.value for s in RequestStage})
        self.assertEqual(len(board["NEW"]), 1)
        self.assertEqual(len(board["IN_PROGRESS"]), 1)
        self.assertEqual(board["SCRAP"], [])

    def test_calendar_range(self):
        now = utcnow()
        inside = self.make_request(self.equipment, self.employee, requestType=RequestType.PREVENTIVE,
                                   scheduledDate=now + self.days(3))
        self.make_request(self.equipment, self.employee, requestType=RequestType.PREVENTIVE,
                          scheduledDate=now + self.days(40))
        events = service.get_calendar(self.db, self.manager, now, now + self.days(7))
        self.assertEqual([e["id"] for e in events], [inside.id])

        with self.assertRaises(ValidationException):
            service.get_calendar(self.db, self.manager, now, now - self.days(1))


class TestUpdateAndDelete(RequestServiceTestCase):

    def test_switch_to_preventive_needs_date(self):
        r = self.make_request(self.equipment, self.employee)
        with self.assertRaises(ValidationException):
            service.update_request(self.db, r.id, RequestUpdateRequest(requestType=RequestType.PREVENTIVE),
                                   self.manager)

    def test_update_fields(self):
        r = self.make_request(self.equipment, self.employee)
        data = service.update_request(self.db, r.id,
                                      RequestUpdateRequest(priority=RequestPriority.HIGH, notes="Parts ordered"),
                                      self.tech)
        self.assertEqual(data["priority"], "HIGH")
        self.assertEqual(data["notes"], "Parts ordered")
        self.assertEqual(data["stage"], "NEW")

    def test_closed_request_cannot_be_edited(self):
        r = self.make_request(self.equipment, self.employee, stage=RequestStage.SCRAP)
        with self.assertRaises(InvalidTransitionException):
            service.update_request(self.db, r.id, RequestUpdateRequest(subject="Renamed"), self.manager)

    def test_employee_cannot_edit(self):
        r = self.make_request(self.equipment, self.employee)
        with self.assertRaises(ForbiddenException):
            service.update_request(self.db, r.id, RequestUpdateRequest(subject="Renamed"), self.employee)

    def test_creator_deletes_new_request(self):
        r = self.make_request(self.equipment, self.employee)
        service.delete_request(self.db, r.id, self.employee)
        self.assertEqual(self.db.query(MaintenanceRequest).count(), 0)

    def test_only_admin_deletes_started_request(self):
        r = self.make_request(self.equipment, self.employee, stage=RequestStage.IN_PROGRESS)
        with self.assertRaises(InvalidTransitionException):
            service.delete_request(self.db, r.id, self.manager)
        service.delete_request(self.db, r.id, self.admin)
        self.assertEqual(self.db.query(MaintenanceRequest).count(), 0)

    def test_cannot_delete_someone_elses_request(self):
        r = self.make_request(self.equipment, self.manager)
        with self.assertRaises(ForbiddenException):
            service.delete_request(self.db, r.id, self.employee)


if __name__ == "__main__":
    unittest.main()
