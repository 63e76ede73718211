from django.urls import path

from . import views

urlpatterns = [
    path("open/login", views.LoginView.as_view(), name="login"),
    path("secure/me", views.MeView.as_view(), name="me"),
    path("secure/change-password", views.ChangePasswordView.as_view(), name="change-password"),
    path("admin/reset-password", views.ResetPasswordView.as_view(), name="admin-reset-password"),
    path("admin/add-ta", views.AddTaView.as_view(), name="admin-add-ta"),
    path("admin/remove-ta", views.RemoveTaView.as_view(), name="admin-remove-ta"),
]
