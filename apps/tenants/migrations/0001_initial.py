# Generated migration for the tenant directory

import uuid

from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name='Company',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, help_text='Unique identifier', primary_key=True, serialize=False)),
                ('created_at', models.DateTimeField(auto_now_add=True, db_index=True, help_text='Timestamp when the record was created')),
                ('updated_at', models.DateTimeField(auto_now=True, help_text='Timestamp when the record was last updated')),
                ('name', models.CharField(help_text='Company display name', max_length=255, unique=True)),
                ('is_active', models.BooleanField(db_index=True, default=True, help_text='Inactive companies cannot authenticate')),
            ],
            options={
                'db_table': 'companies',
                'verbose_name_plural': 'companies',
                'ordering': ['name'],
            },
        ),
    ]
