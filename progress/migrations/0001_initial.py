from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="VocabularyTask",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("task_id", models.CharField(max_length=128, unique=True)),
                ("content", models.JSONField(blank=True, default=dict)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
            ],
        ),
        migrations.CreateModel(
            name="LearningItem",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("user_id", models.CharField(max_length=64)),
                ("task_id", models.CharField(max_length=128)),
                ("term", models.CharField(max_length=255)),
                ("status", models.PositiveSmallIntegerField(
                    choices=[
                        (0, "Not started"),
                        (1, "Introduced"),
                        (2, "Partially learned"),
                        (3, "Second chance"),
                        (4, "Reviewing"),
                        (5, "Mastered"),
                    ],
                    default=0,
                )),
                ("definition", models.TextField(blank=True, default="")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
            ],
            options={
                "ordering": ("created_at", "id"),
                "indexes": [models.Index(fields=["user_id", "task_id"], name="idx_item_user_task")],
                "constraints": [
                    models.UniqueConstraint(fields=("user_id", "task_id", "term"), name="uq_item_user_task_term"),
                ],
            },
        ),
        migrations.CreateModel(
            name="CompletionRecord",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("user_id", models.CharField(max_length=64)),
                ("task_id", models.CharField(max_length=128)),
                ("course_id", models.CharField(max_length=64)),
                ("score", models.FloatField(default=0.0)),
                ("attempts", models.PositiveIntegerField(default=1)),
                ("completed_at", models.DateTimeField(blank=True, db_index=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "indexes": [models.Index(fields=["user_id", "course_id"], name="idx_completion_user_course")],
                "constraints": [
                    models.UniqueConstraint(fields=("user_id", "task_id"), name="uq_completion_user_task"),
                ],
            },
        ),
    ]
