from django.contrib import admin

from hirewise.employers.models import Employer


@admin.register(Employer)
class EmployerAdmin(admin.ModelAdmin):
    list_display = ["name", "billing_email", "stripe_customer_id", "created"]
    search_fields = ["name", "billing_email", "stripe_customer_id"]
    readonly_fields = ["stripe_customer_id", "current_subscription"]
