"""
Schema migration checks.
The test settings skip migrations for speed, so these re-enable the real
migration modules to compare them with the models.
"""

from io import StringIO

from django.core.management import call_command
from django.db import connection
from django.db.migrations.loader import MigrationLoader
from django.test import TestCase, override_settings

PROJECT_APPS = ("students", "billing", "promotions")


@override_settings(MIGRATION_MODULES={})
class MigrationStateTests(TestCase):
    def test_models_match_committed_migrations(self):
        out = StringIO()

        try:
            call_command("makemigrations", *PROJECT_APPS, check=True, dry_run=True, stdout=out)
        except SystemExit:
            self.fail(f"Models have changes without a migration:\n{out.getvalue()}")

    def test_uniqueness_guards_are_migrated(self):
        state = MigrationLoader(connection).project_state()

        def constraint_names(app_label, model_name):
            return {c.name for c in state.models[(app_label, model_name)].options.get("constraints", [])}

        self.assertIn("unique_discount_per_payment", constraint_names("promotions", "discountusage"))
        self.assertIn("unique_assignment_per_rule_student", constraint_names("promotions", "discountassignment"))
        self.assertIn("unique_template_per_rule", constraint_names("promotions", "automationruletemplate"))

    def test_payment_discount_link_follows_promotions(self):
        loader = MigrationLoader(connection)

        plan = loader.graph.forwards_plan(("billing", "0002_payment_discount_code"))

        self.assertLess(plan.index(("promotions", "0001_initial")), plan.index(("billing", "0002_payment_discount_code")))
        self.assertIn("discount_code", loader.project_state().models[("billing", "payment")].fields)
