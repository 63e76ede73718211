from rest_framework import permissions, status
from rest_framework.response import Response
from rest_framework.views import APIView

from accounts.permissions import IsStudent, IsTA
from accounts.services import ensure_student_account

from ..exceptions import SignupValidationError
from ..service_utils import grading, registry, self_service, slots
from ..services import get_signup_service
from .serializers import (
    AuditSerializer,
    AvailableSlotViewSerializer,
    CourseInputSerializer,
    CourseSerializer,
    GradeInputSerializer,
    GradeSerializer,
    MemberInputSerializer,
    MemberSerializer,
    RosterEntrySerializer,
    SearchResultSerializer,
    SheetInputSerializer,
    SheetSerializer,
    SignupViewSerializer,
    SlotInputSerializer,
    SlotSerializer,
)


def _validated(serializer_class, request):
    serializer = serializer_class(data=request.data)
    serializer.is_valid(raise_exception=True)
    return serializer.validated_data


class SignupAPIView(APIView):
    """Base view for endpoints backed by the signup document."""

    permission_classes = [IsTA]

    def get_service(self):
        return get_signup_service()

    def slot_context(self, service):
        return {"request": self.request, "now": service.now()}


# Public ---------------------------------------------------------------


class CourseSearchView(SignupAPIView):
    authentication_classes: list = []
    permission_classes = [permissions.AllowAny]

    def get(self, request, *args, **kwargs):
        document = self.get_service().snapshot()
        results = registry.search_courses(document, request.query_params.get("code"))
        return Response(
            {"ok": True, "results": SearchResultSerializer(results, many=True).data}
        )


# Courses --------------------------------------------------------------


class CourseListCreateView(SignupAPIView):
    def get(self, request, *args, **kwargs):
        document = self.get_service().snapshot()
        courses = registry.list_courses(document)
        return Response({"ok": True, "courses": CourseSerializer(courses, many=True).data})

    def post(self, request, *args, **kwargs):
        data = _validated(CourseInputSerializer, request)
        with self.get_service().session() as document:
            course = registry.create_course(document, **data)
        return Response(
            {"ok": True, "course": CourseSerializer(course).data},
            status=status.HTTP_201_CREATED,
        )


class CourseDetailView(SignupAPIView):
    def put(self, request, course_id: int, *args, **kwargs):
        data = _validated(CourseInputSerializer, request)
        with self.get_service().session() as document:
            course = registry.update_course(document, course_id, **data)
        return Response({"ok": True, "course": CourseSerializer(course).data})

    def delete(self, request, course_id: int, *args, **kwargs):
        with self.get_service().session() as document:
            deleted_id = registry.delete_course(document, course_id)
        return Response({"ok": True, "deletedId": deleted_id})


# Members --------------------------------------------------------------


class MemberListCreateView(SignupAPIView):
    def get(self, request, course_id: int, *args, **kwargs):
        document = self.get_service().snapshot()
        members = registry.list_members(document, course_id)
        return Response({"ok": True, "members": MemberSerializer(members, many=True).data})

    def post(self, request, course_id: int, *args, **kwargs):
        data = _validated(MemberInputSerializer, request)
        with self.get_service().session() as document:
            member = registry.add_member(
                document,
                course_id,
                username=data["username"],
                first_name=data["firstName"],
                last_name=data["lastName"],
                password=data["password"],
            )
        ensure_student_account(member.username, data["password"].strip())
        return Response(
            {"ok": True, "member": MemberSerializer(member).data},
            status=status.HTTP_201_CREATED,
        )


class MemberBulkUploadView(SignupAPIView):
    """Enroll members from an uploaded ``lastName,firstName,username,password`` CSV."""

    def post(self, request, course_id: int, *args, **kwargs):
        upload = request.FILES.get("file")
        if upload is None:
            raise SignupValidationError("CSV file required")
        try:
            content = upload.read().decode("utf-8-sig")
        except UnicodeDecodeError as exc:
            raise SignupValidationError("CSV file must be UTF-8 encoded") from exc

        rows = registry.parse_member_csv(content)
        passwords = registry.row_passwords(rows)
        with self.get_service().session() as document:
            added = registry.bulk_add_members(document, course_id, rows)
        for member in added:
            ensure_student_account(member.username, passwords.get(member.username, ""))
        return Response({"ok": True, "added": MemberSerializer(added, many=True).data})


class MemberDeleteView(SignupAPIView):
    def delete(self, request, course_id: int, member_id: int, *args, **kwargs):
        with self.get_service().session() as document:
            registry.delete_member(document, course_id, member_id)
        return Response({"ok": True})


# Sheets ---------------------------------------------------------------


class SheetListCreateView(SignupAPIView):
    def get(self, request, course_id: int, *args, **kwargs):
        document = self.get_service().snapshot()
        sheets = slots.list_sheets(document, course_id)
        return Response({"ok": True, "sheets": SheetSerializer(sheets, many=True).data})

    def post(self, request, course_id: int, *args, **kwargs):
        data = _validated(SheetInputSerializer, request)
        with self.get_service().session() as document:
            sheet = slots.add_sheet(
                document,
                course_id,
                assignment_name=data["assignmentName"],
                description=data["description"],
            )
        return Response(
            {"ok": True, "sheet": SheetSerializer(sheet).data},
            status=status.HTTP_201_CREATED,
        )


class SheetDetailView(SignupAPIView):
    def put(self, request, sheet_id: int, *args, **kwargs):
        data = _validated(SheetInputSerializer, request)
        with self.get_service().session() as document:
            sheet = slots.update_sheet(
                document,
                sheet_id,
                assignment_name=data["assignmentName"],
                description=data["description"],
            )
        return Response({"ok": True, "sheet": SheetSerializer(sheet).data})

    def delete(self, request, sheet_id: int, *args, **kwargs):
        with self.get_service().session() as document:
            slots.delete_sheet(document, sheet_id)
        return Response({"ok": True})


# Slots ----------------------------------------------------------------


class SlotListCreateView(SignupAPIView):
    def get(self, request, sheet_id: int, *args, **kwargs):
        service = self.get_service()
        items = slots.list_slots(service.snapshot(), sheet_id)
        data = SlotSerializer(items, many=True, context=self.slot_context(service)).data
        return Response({"ok": True, "slots": data})

    def post(self, request, sheet_id: int, *args, **kwargs):
        data = _validated(SlotInputSerializer, request)
        service = self.get_service()
        with service.session() as document:
            slot = slots.add_slot(
                document,
                sheet_id,
                start_time=data["startTime"],
                end_time=data["endTime"],
                max_members=data["maxMembers"],
            )
        return Response(
            {"ok": True, "slot": SlotSerializer(slot, context=self.slot_context(service)).data},
            status=status.HTTP_201_CREATED,
        )


class SlotDetailView(SignupAPIView):
    def put(self, request, slot_id: int, *args, **kwargs):
        data = _validated(SlotInputSerializer, request)
        service = self.get_service()
        with service.session() as document:
            slot = slots.update_slot(
                document,
                slot_id,
                start_time=data["startTime"],
                end_time=data["endTime"],
                max_members=data["maxMembers"],
            )
        return Response(
            {"ok": True, "slot": SlotSerializer(slot, context=self.slot_context(service)).data}
        )

    def delete(self, request, slot_id: int, *args, **kwargs):
        with self.get_service().session() as document:
            slots.delete_slot(document, slot_id)
        return Response({"ok": True})


# Grading --------------------------------------------------------------


class GradingRosterMixin:
    def roster_response(self, service, slot, roster):
        return Response(
            {
                "ok": True,
                "slot": SlotSerializer(slot, context=self.slot_context(service)).data,
                "members": RosterEntrySerializer(roster, many=True).data,
            }
        )


class CurrentSlotView(GradingRosterMixin, SignupAPIView):
    def get(self, request, sheet_id: int, *args, **kwargs):
        service = self.get_service()
        slot, roster = grading.get_current_slot(service.snapshot(), sheet_id, service.now())
        return self.roster_response(service, slot, roster)


class NavigateSlotView(GradingRosterMixin, SignupAPIView):
    def get(self, request, slot_id: int, *args, **kwargs):
        service = self.get_service()
        slot, roster = grading.navigate(
            service.snapshot(), slot_id, request.query_params.get("direction", "")
        )
        return self.roster_response(service, slot, roster)


class GradeUpsertView(SignupAPIView):
    def post(self, request, slot_id: int, member_id: int, *args, **kwargs):
        data = _validated(GradeInputSerializer, request)
        service = self.get_service()
        with service.session() as document:
            grade, audit = grading.add_or_update_grade(
                document,
                slot_id,
                member_id,
                base_mark=data["baseMark"],
                bonus=data["bonus"],
                penalty=data["penalty"],
                comment=data["comment"],
                ta_username=request.user.get_username(),
                now=service.now(),
            )
        return Response(
            {
                "ok": True,
                "grade": GradeSerializer(grade).data,
                "audit": AuditSerializer(audit).data,
            }
        )


class GradeAuditView(SignupAPIView):
    def get(self, request, grade_id: int, *args, **kwargs):
        audit = grading.get_audit(self.get_service().snapshot(), grade_id)
        return Response({"ok": True, "audit": AuditSerializer(audit).data})


# Student self-service -------------------------------------------------


class MySignupsView(SignupAPIView):
    permission_classes = [IsStudent]

    def get(self, request, *args, **kwargs):
        service = self.get_service()
        views = self_service.my_signups(service.snapshot(), request.user.get_username())
        data = SignupViewSerializer(views, many=True, context=self.slot_context(service)).data
        return Response({"ok": True, "signups": data})


class AvailableSlotsView(SignupAPIView):
    permission_classes = [IsStudent]

    def get(self, request, *args, **kwargs):
        service = self.get_service()
        views = self_service.available_slots(
            service.snapshot(), request.user.get_username(), service.now()
        )
        data = AvailableSlotViewSerializer(views, many=True, context=self.slot_context(service)).data
        return Response({"ok": True, "availableSlots": data})


class SlotSignupView(SignupAPIView):
    permission_classes = [IsStudent]

    def post(self, request, slot_id: int, *args, **kwargs):
        service = self.get_service()
        with service.session() as document:
            slot = slots.signup(document, slot_id, request.user.get_username(), service.now())
        return Response(
            {
                "ok": True,
                "message": "Successfully signed up for slot",
                "slot": SlotSerializer(slot, context=self.slot_context(service)).data,
            }
        )


class SlotLeaveView(SignupAPIView):
    permission_classes = [IsStudent]

    def delete(self, request, slot_id: int, *args, **kwargs):
        service = self.get_service()
        with service.session() as document:
            slot = slots.leave(document, slot_id, request.user.get_username(), service.now())
        return Response(
            {
                "ok": True,
                "message": "Successfully left slot",
                "slot": SlotSerializer(slot, context=self.slot_context(service)).data,
            }
        )
