from django.urls import path

from .views import (
    AvailableSlotsView,
    CourseDetailView,
    CourseListCreateView,
    CourseSearchView,
    CurrentSlotView,
    GradeAuditView,
    GradeUpsertView,
    MemberBulkUploadView,
    MemberDeleteView,
    MemberListCreateView,
    MySignupsView,
    NavigateSlotView,
    SheetDetailView,
    SheetListCreateView,
    SlotDetailView,
    SlotLeaveView,
    SlotListCreateView,
    SlotSignupView,
)


urlpatterns = [
    path("open/search", CourseSearchView.as_view(), name="course-search"),

    path("secure/courses", CourseListCreateView.as_view(), name="course-list"),
    path("secure/courses/<int:course_id>", CourseDetailView.as_view(), name="course-detail"),

    path("secure/members/<int:course_id>", MemberListCreateView.as_view(), name="member-list"),
    path(
        "secure/members/<int:course_id>/bulk",
        MemberBulkUploadView.as_view(),
        name="member-bulk",
    ),
    path(
        "secure/members/<int:course_id>/<int:member_id>",
        MemberDeleteView.as_view(),
        name="member-detail",
    ),

    path("secure/sheets/<int:course_id>", SheetListCreateView.as_view(), name="sheet-list"),
    path("secure/sheets/one/<int:sheet_id>", SheetDetailView.as_view(), name="sheet-detail"),

    path("secure/slots/<int:sheet_id>", SlotListCreateView.as_view(), name="slot-list"),
    path("secure/slots/one/<int:slot_id>", SlotDetailView.as_view(), name="slot-detail"),

    path("secure/grades/current/<int:sheet_id>", CurrentSlotView.as_view(), name="grade-current"),
    path("secure/grades/navigate/<int:slot_id>", NavigateSlotView.as_view(), name="grade-navigate"),
    path("secure/grades/audit/<int:grade_id>", GradeAuditView.as_view(), name="grade-audit"),
    path(
        "secure/grades/<int:slot_id>/<int:member_id>",
        GradeUpsertView.as_view(),
        name="grade-upsert",
    ),

    path("secure/students/my-signups", MySignupsView.as_view(), name="student-signups"),
    path(
        "secure/students/available-slots",
        AvailableSlotsView.as_view(),
        name="student-available-slots",
    ),
    path("secure/students/signup/<int:slot_id>", SlotSignupView.as_view(), name="student-signup"),
    path("secure/students/leave/<int:slot_id>", SlotLeaveView.as_view(), name="student-leave"),
]
