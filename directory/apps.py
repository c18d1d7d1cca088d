from django.apps import AppConfig


class DirectoryConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "directory"
    verbose_name = "Business Directory"

    def ready(self):
        # Register pipeline workers with the job registry and config checks
        import config.checks  # noqa: F401
        import directory.workers  # noqa: F401
