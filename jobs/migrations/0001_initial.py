from django.db import migrations, models
import django.utils.timezone


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name='Job',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('worker', models.CharField(max_length=255)),
                ('queue', models.CharField(default='default', max_length=64)),
                ('args', models.JSONField(blank=True, default=dict)),
                ('state', models.CharField(
                    choices=[
                        ('available', 'Available'),
                        ('scheduled', 'Scheduled'),
                        ('executing', 'Executing'),
                        ('retryable', 'Retryable'),
                        ('completed', 'Completed'),
                        ('discarded', 'Discarded'),
                        ('cancelled', 'Cancelled'),
                    ],
                    default='available',
                    max_length=20,
                )),
                ('attempt', models.PositiveIntegerField(default=0)),
                ('max_attempts', models.PositiveIntegerField(default=20)),
                ('errors', models.JSONField(blank=True, default=list)),
                ('unique_key', models.CharField(blank=True, max_length=64, null=True)),
                ('inserted_at', models.DateTimeField(default=django.utils.timezone.now)),
                ('scheduled_at', models.DateTimeField(default=django.utils.timezone.now)),
                ('attempted_at', models.DateTimeField(blank=True, null=True)),
                ('completed_at', models.DateTimeField(blank=True, null=True)),
                ('discarded_at', models.DateTimeField(blank=True, null=True)),
                ('cancelled_at', models.DateTimeField(blank=True, null=True)),
            ],
            options={
                'db_table': 'jobs',
                'ordering': ['scheduled_at', 'id'],
                'indexes': [
                    models.Index(fields=['queue', 'state', 'scheduled_at'], name='jobs_fetch_idx'),
                    models.Index(fields=['unique_key', 'inserted_at'], name='jobs_unique_idx'),
                    models.Index(fields=['worker', 'state'], name='jobs_worker_state_idx'),
                ],
                'constraints': [
                    models.UniqueConstraint(
                        condition=models.Q(state__in=['available', 'scheduled', 'executing', 'retryable']),
                        fields=('unique_key',),
                        name='jobs_unique_active_key',
                    ),
                ],
            },
        ),
    ]
