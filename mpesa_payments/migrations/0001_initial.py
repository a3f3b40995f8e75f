from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
    ]

    operations = [
        migrations.CreateModel(
            name='MpesaCallback',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('checkout_request_id', models.CharField(blank=True, db_index=True, max_length=50)),
                ('merchant_request_id', models.CharField(blank=True, max_length=50)),
                ('result_code', models.IntegerField(blank=True, null=True)),
                ('result_desc', models.CharField(blank=True, max_length=255)),
                ('payload', models.JSONField(blank=True, null=True)),
                ('outcome', models.CharField(choices=[('PROCESSED', 'Processed'), ('DUPLICATE', 'Duplicate'), ('UNMATCHED', 'Unmatched'), ('REJECTED', 'Rejected'), ('ERROR', 'Error')], max_length=15)),
                ('error_message', models.TextField(blank=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
            ],
            options={
                'ordering': ['-created_at'],
                'indexes': [models.Index(fields=['outcome'], name='mpesa_callback_outcome_idx')],
            },
        ),
    ]
