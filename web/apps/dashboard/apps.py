from django.apps import AppConfig


class DashboardConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "apps.dashboard"
    label = "dashboard"

    def ready(self):
        from django.test.signals import setting_changed

        from .providers import reset_on_setting_change

        setting_changed.connect(reset_on_setting_change, dispatch_uid="dashboard-cache-reset")
