from rest_framework import serializers

from ..records import format_timestamp
from ..service_utils.grading import comment_entries
from ..service_utils.slots import classify


class CourseSerializer(serializers.Serializer):
    id = serializers.IntegerField(read_only=True)
    term = serializers.CharField()
    code = serializers.CharField()
    section = serializers.CharField()
    name = serializers.CharField()


class MemberSerializer(serializers.Serializer):
    """Enrollment record. The stored password hash is never exposed."""

    id = serializers.IntegerField(read_only=True)
    courseId = serializers.IntegerField(source="course_id", read_only=True)
    username = serializers.CharField()
    firstName = serializers.CharField(source="first_name")
    lastName = serializers.CharField(source="last_name")


class SheetSerializer(serializers.Serializer):
    id = serializers.IntegerField(read_only=True)
    courseId = serializers.IntegerField(source="course_id", read_only=True)
    assignmentName = serializers.CharField(source="assignment_name")
    description = serializers.CharField(allow_blank=True)


class SlotSerializer(serializers.Serializer):
    id = serializers.IntegerField(read_only=True)
    sheetId = serializers.IntegerField(source="sheet_id", read_only=True)
    startTime = serializers.SerializerMethodField()
    endTime = serializers.SerializerMethodField()
    maxMembers = serializers.IntegerField(source="max_members", read_only=True)
    signupMemberIds = serializers.ListField(
        child=serializers.IntegerField(), source="signup_member_ids", read_only=True
    )
    signupCount = serializers.IntegerField(source="occupancy", read_only=True)

    def get_startTime(self, obj):
        return format_timestamp(obj.start_time)

    def get_endTime(self, obj):
        return format_timestamp(obj.end_time)

    def to_representation(self, instance):
        data = super().to_representation(instance)
        now = self.context.get("now")
        if now is not None:
            status = classify(instance, now)
            data["state"] = status.state
            data["canJoin"] = status.can_join
            data["canLeave"] = status.can_leave
            data["availableSpots"] = status.available_spots
        return data


class GradeSerializer(serializers.Serializer):
    id = serializers.IntegerField(read_only=True)
    slotId = serializers.IntegerField(source="slot_id", read_only=True)
    memberId = serializers.IntegerField(source="member_id", read_only=True)
    baseMark = serializers.ReadOnlyField(source="base_mark")
    bonus = serializers.ReadOnlyField()
    penalty = serializers.ReadOnlyField()
    finalMark = serializers.ReadOnlyField(source="final_mark")
    comment = serializers.CharField(read_only=True)
    commentEntries = serializers.SerializerMethodField()
    taUsername = serializers.CharField(source="ta_username", read_only=True)
    gradedAt = serializers.CharField(source="graded_at", read_only=True)

    def get_commentEntries(self, obj):
        return comment_entries(obj.comment)


class AuditSerializer(serializers.Serializer):
    id = serializers.IntegerField(read_only=True)
    gradeId = serializers.IntegerField(source="grade_id", read_only=True)
    changedBy = serializers.CharField(source="changed_by", read_only=True)
    changedAt = serializers.CharField(source="changed_at", read_only=True)
    summary = serializers.CharField(read_only=True)


class RosterEntrySerializer(serializers.Serializer):
    """A signed-up member flattened together with their grade for the slot."""

    def to_representation(self, instance):
        data = MemberSerializer(instance.member).data
        data["grade"] = GradeSerializer(instance.grade).data if instance.grade else None
        return data


class SignupViewSerializer(serializers.Serializer):
    slot = SlotSerializer(read_only=True)
    sheet = SheetSerializer(read_only=True, allow_null=True)
    course = CourseSerializer(read_only=True, allow_null=True)
    member = MemberSerializer(read_only=True, allow_null=True)
    grade = GradeSerializer(read_only=True, allow_null=True)


class AvailableSlotViewSerializer(serializers.Serializer):
    slot = SlotSerializer(read_only=True)
    sheet = SheetSerializer(read_only=True, allow_null=True)
    course = CourseSerializer(read_only=True, allow_null=True)
    availableSpots = serializers.IntegerField(source="available_spots", read_only=True)


class SearchSlotSerializer(serializers.Serializer):
    def to_representation(self, instance):
        data = SlotSerializer(instance["slot"]).data
        data["signupCount"] = instance["signupCount"]
        data["capacity"] = instance["capacity"]
        return data


class SearchSheetSerializer(serializers.Serializer):
    def to_representation(self, instance):
        data = SheetSerializer(instance["sheet"]).data
        data["slots"] = SearchSlotSerializer(instance["slots"], many=True).data
        return data


class SearchResultSerializer(serializers.Serializer):
    course = CourseSerializer(read_only=True)
    sheets = SearchSheetSerializer(many=True, read_only=True)


# Input ----------------------------------------------------------------


def _optional_text(**kwargs):
    return serializers.CharField(
        required=False, allow_blank=True, allow_null=True, default=None, **kwargs
    )


class CourseInputSerializer(serializers.Serializer):
    term = _optional_text()
    code = _optional_text()
    section = _optional_text()
    name = _optional_text()


class MemberInputSerializer(serializers.Serializer):
    username = _optional_text()
    firstName = _optional_text()
    lastName = _optional_text()
    password = _optional_text(trim_whitespace=False)


class SheetInputSerializer(serializers.Serializer):
    assignmentName = _optional_text()
    description = _optional_text()


class SlotInputSerializer(serializers.Serializer):
    startTime = _optional_text()
    endTime = _optional_text()
    maxMembers = serializers.JSONField(required=False, allow_null=True, default=None)


class GradeInputSerializer(serializers.Serializer):
    # Marks are passed through untouched; the grading rules validate them.
    baseMark = serializers.JSONField(required=False, allow_null=True, default=None)
    bonus = serializers.JSONField(required=False, allow_null=True, default=None)
    penalty = serializers.JSONField(required=False, allow_null=True, default=None)
    comment = _optional_text(trim_whitespace=False)
