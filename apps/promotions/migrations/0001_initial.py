# Generated manually for the promotions app initial schema

import uuid

import django.core.validators
import django.db.models.deletion
import django.utils.timezone
from django.db import migrations, models

KIND_CHOICES = [("fixed_amount", "Fixed Amount"), ("percentage", "Percentage")]
USAGE_TYPE_CHOICES = [("one_time", "One Time"), ("ongoing", "Ongoing")]
APPLICABLE_TO_CHOICES = [("training", "Training"), ("store", "Store"), ("both", "Training & Store")]
SCOPE_CHOICES = [("per_student", "Per Student"), ("per_family", "Per Family")]
EVENT_TYPE_CHOICES = [
    ("enrollment", "New Enrollment"),
    ("first_payment", "First Payment"),
    ("belt_promotion", "Belt Promotion"),
    ("attendance_milestone", "Attendance Milestone"),
    ("referral", "Family Referral"),
    ("birthday", "Birthday"),
    ("seasonal", "Seasonal Promotion"),
]


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        ("students", "0001_initial"),
        ("billing", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="DiscountCode",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("code", models.CharField(help_text="Code entered at checkout", max_length=50, unique=True)),
                ("name", models.CharField(max_length=200)),
                ("description", models.TextField(blank=True)),
                ("kind", models.CharField(choices=KIND_CHOICES, default="percentage", max_length=20)),
                (
                    "value",
                    models.PositiveIntegerField(
                        help_text="Cents for fixed_amount, whole percent (0-100) for percentage"
                    ),
                ),
                ("usage_type", models.CharField(choices=USAGE_TYPE_CHOICES, default="one_time", max_length=20)),
                (
                    "max_uses",
                    models.PositiveIntegerField(
                        blank=True, help_text="Total uses allowed (null = unlimited)", null=True
                    ),
                ),
                ("current_uses", models.PositiveIntegerField(default=0)),
                ("applicable_to", models.CharField(choices=APPLICABLE_TO_CHOICES, default="training", max_length=20)),
                ("scope", models.CharField(choices=SCOPE_CHOICES, default="per_family", max_length=20)),
                ("valid_from", models.DateTimeField(default=django.utils.timezone.now)),
                (
                    "valid_until",
                    models.DateTimeField(blank=True, help_text="When code expires (null = never)", null=True),
                ),
                ("is_active", models.BooleanField(default=True, help_text="Master switch for code")),
                ("created_automatically", models.BooleanField(default=False)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "family",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="discount_codes",
                        to="students.family",
                    ),
                ),
                (
                    "student",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="discount_codes",
                        to="students.student",
                    ),
                ),
            ],
            options={
                "verbose_name": "Discount Code",
                "verbose_name_plural": "Discount Codes",
                "db_table": "discount_codes",
                "ordering": ("-created_at",),
                "indexes": [
                    models.Index(fields=["is_active", "valid_from", "valid_until"], name="idx_discount_validity"),
                    models.Index(fields=["family"], name="discount_code_family_idx"),
                    models.Index(fields=["student"], name="discount_code_student_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="DiscountUsage",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                (
                    "original_amount_cents",
                    models.BigIntegerField(validators=[django.core.validators.MinValueValidator(0)]),
                ),
                (
                    "discount_amount_cents",
                    models.BigIntegerField(validators=[django.core.validators.MinValueValidator(0)]),
                ),
                (
                    "final_amount_cents",
                    models.BigIntegerField(validators=[django.core.validators.MinValueValidator(0)]),
                ),
                ("used_at", models.DateTimeField(default=django.utils.timezone.now)),
                (
                    "discount_code",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="usages",
                        to="promotions.discountcode",
                    ),
                ),
                (
                    "payment",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="discount_usages",
                        to="billing.payment",
                    ),
                ),
                (
                    "family",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="discount_usages",
                        to="students.family",
                    ),
                ),
                (
                    "student",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="discount_usages",
                        to="students.student",
                    ),
                ),
            ],
            options={
                "verbose_name": "Discount Usage",
                "verbose_name_plural": "Discount Usages",
                "db_table": "discount_code_usage",
                "ordering": ("-used_at",),
                "indexes": [
                    models.Index(fields=["discount_code", "family"], name="discount_usage_code_fam_idx"),
                    models.Index(fields=["discount_code", "student"], name="discount_usage_code_stu_idx"),
                    models.Index(fields=["payment"], name="discount_usage_payment_idx"),
                ],
                "constraints": [
                    models.UniqueConstraint(fields=("discount_code", "payment"), name="unique_discount_per_payment"),
                ],
            },
        ),
        migrations.CreateModel(
            name="DiscountTemplate",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("name", models.CharField(max_length=200)),
                ("description", models.TextField(blank=True)),
                ("kind", models.CharField(choices=KIND_CHOICES, default="percentage", max_length=20)),
                ("value", models.PositiveIntegerField()),
                ("usage_type", models.CharField(choices=USAGE_TYPE_CHOICES, default="one_time", max_length=20)),
                ("max_uses", models.PositiveIntegerField(blank=True, null=True)),
                ("applicable_to", models.CharField(choices=APPLICABLE_TO_CHOICES, default="training", max_length=20)),
                ("scope", models.CharField(choices=SCOPE_CHOICES, default="per_student", max_length=20)),
                (
                    "validity_days",
                    models.PositiveIntegerField(
                        blank=True,
                        help_text="Generated codes expire this many days after grant (null = never)",
                        null=True,
                    ),
                ),
                ("is_active", models.BooleanField(default=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "verbose_name": "Discount Template",
                "verbose_name_plural": "Discount Templates",
                "db_table": "discount_templates",
                "ordering": ("name",),
            },
        ),
        migrations.CreateModel(
            name="DiscountEvent",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("event_type", models.CharField(choices=EVENT_TYPE_CHOICES, max_length=30)),
                ("payload", models.JSONField(blank=True, default=dict)),
                ("processed_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "student",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="discount_events",
                        to="students.student",
                    ),
                ),
                (
                    "family",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="discount_events",
                        to="students.family",
                    ),
                ),
            ],
            options={
                "verbose_name": "Discount Event",
                "verbose_name_plural": "Discount Events",
                "db_table": "discount_events",
                "ordering": ("created_at",),
                "indexes": [
                    models.Index(fields=["processed_at", "created_at"], name="discount_event_pending_idx"),
                    models.Index(fields=["event_type", "student"], name="discount_event_type_stu_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="AutomationRule",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("name", models.CharField(max_length=200)),
                ("description", models.TextField(blank=True)),
                ("event_type", models.CharField(choices=EVENT_TYPE_CHOICES, max_length=30)),
                ("conditions", models.JSONField(blank=True, default=dict, help_text="Rule conditions as JSON")),
                (
                    "max_uses_per_student",
                    models.PositiveIntegerField(default=1, validators=[django.core.validators.MinValueValidator(1)]),
                ),
                ("valid_from", models.DateTimeField(default=django.utils.timezone.now)),
                ("valid_until", models.DateTimeField(blank=True, null=True)),
                ("is_active", models.BooleanField(default=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "applicable_programs",
                    models.ManyToManyField(
                        blank=True,
                        help_text="Only students enrolled in one of these programs qualify (empty = all)",
                        related_name="automation_rules",
                        to="students.program",
                    ),
                ),
            ],
            options={
                "verbose_name": "Automation Rule",
                "verbose_name_plural": "Automation Rules",
                "db_table": "discount_automation_rules",
                "ordering": ("created_at",),
                "indexes": [
                    models.Index(fields=["event_type", "is_active"], name="automation_rule_event_idx"),
                    models.Index(fields=["valid_from", "valid_until"], name="automation_rule_validity_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="AutomationRuleTemplate",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("sequence_order", models.PositiveIntegerField(default=1)),
                (
                    "rule",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="rule_templates",
                        to="promotions.automationrule",
                    ),
                ),
                (
                    "template",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="rule_links",
                        to="promotions.discounttemplate",
                    ),
                ),
            ],
            options={
                "db_table": "discount_automation_rule_templates",
                "ordering": ("sequence_order",),
                "constraints": [
                    models.UniqueConstraint(fields=("rule", "template"), name="unique_template_per_rule"),
                ],
            },
        ),
        migrations.AddField(
            model_name="automationrule",
            name="templates",
            field=models.ManyToManyField(
                related_name="automation_rules",
                through="promotions.AutomationRuleTemplate",
                to="promotions.discounttemplate",
            ),
        ),
        migrations.CreateModel(
            name="DiscountAssignment",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("sequence", models.PositiveIntegerField(default=1)),
                ("assigned_at", models.DateTimeField(default=django.utils.timezone.now)),
                (
                    "rule",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="assignments",
                        to="promotions.automationrule",
                    ),
                ),
                (
                    "event",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="assignments",
                        to="promotions.discountevent",
                    ),
                ),
                (
                    "student",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="discount_assignments",
                        to="students.student",
                    ),
                ),
                (
                    "family",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="discount_assignments",
                        to="students.family",
                    ),
                ),
                (
                    "discount_code",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="assignments",
                        to="promotions.discountcode",
                    ),
                ),
                (
                    "template",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="assignments",
                        to="promotions.discounttemplate",
                    ),
                ),
            ],
            options={
                "verbose_name": "Discount Assignment",
                "verbose_name_plural": "Discount Assignments",
                "db_table": "discount_assignments",
                "ordering": ("-assigned_at",),
                "indexes": [
                    models.Index(fields=["rule", "student"], name="discount_assign_rule_stu_idx"),
                    models.Index(fields=["rule", "family"], name="discount_assign_rule_fam_idx"),
                ],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("rule", "student", "template", "sequence"), name="unique_assignment_per_rule_student"
                    ),
                ],
            },
        ),
    ]
