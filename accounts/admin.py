from django.contrib import admin

from .models import AccountProfile


@admin.register(AccountProfile)
class AccountProfileAdmin(admin.ModelAdmin):
    list_display = ("user", "role", "must_change_password", "updated_at")
    list_filter = ("role", "must_change_password")
    search_fields = ("user__username",)
