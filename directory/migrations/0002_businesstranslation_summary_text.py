"""
Store translated summaries as text.

A translated summary can run longer than the 500 characters allowed for
the source summary.
"""

from django.db import migrations, models


class Migration(migrations.Migration):

    dependencies = [
        ('directory', '0001_initial'),
    ]

    operations = [
        migrations.AlterField(
            model_name='businesstranslation',
            name='summary',
            field=models.TextField(blank=True, null=True),
        ),
    ]
