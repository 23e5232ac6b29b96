import uuid

import django.db.models.deletion
import django.utils.timezone
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name='Payout',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('provider_id', models.UUIDField(db_column='providerId', db_index=True)),
                ('amount', models.DecimalField(decimal_places=2, max_digits=12)),
                ('currency', models.CharField(default='NGN', max_length=10)),
                ('payment_provider', models.CharField(
                    choices=[('PAYSTACK', 'Paystack'), ('FLUTTERWAVE', 'Flutterwave')],
                    db_column='paymentProvider',
                    default='FLUTTERWAVE',
                    max_length=20,
                )),
                ('account_number', models.CharField(blank=True, db_column='accountNumber', default='', max_length=34)),
                ('account_name', models.CharField(blank=True, db_column='accountName', default='', max_length=255)),
                ('bank_code', models.CharField(blank=True, db_column='bankCode', default='', max_length=20)),
                ('bank_name', models.CharField(blank=True, db_column='bankName', default='', max_length=255)),
                ('status', models.CharField(
                    choices=[
                        ('REQUESTED', 'Requested'),
                        ('PROCESSING', 'Processing'),
                        ('COMPLETED', 'Completed'),
                        ('FAILED', 'Failed'),
                    ],
                    default='REQUESTED',
                    max_length=20,
                )),
                ('transaction_ref', models.CharField(blank=True, db_column='transactionRef', max_length=120, null=True, unique=True)),
                ('metadata', models.JSONField(blank=True, null=True)),
                ('failure_reason', models.TextField(blank=True, db_column='failureReason', null=True)),
                ('created_at', models.DateTimeField(db_column='createdAt', default=django.utils.timezone.now)),
                ('updated_at', models.DateTimeField(auto_now=True, db_column='updatedAt')),
                ('processed_at', models.DateTimeField(blank=True, db_column='processedAt', null=True)),
            ],
            options={
                'db_table': 'payout',
                'ordering': ('created_at',),
                'indexes': [models.Index(fields=['status', 'created_at'], name='payout_status_created_idx')],
            },
        ),
        migrations.CreateModel(
            name='Earning',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('provider_id', models.UUIDField(db_column='providerId', db_index=True)),
                ('booking_id', models.UUIDField(db_column='bookingId', unique=True)),
                ('gross_amount', models.DecimalField(db_column='grossAmount', decimal_places=2, max_digits=12)),
                ('platform_fee', models.DecimalField(db_column='platformFee', decimal_places=2, max_digits=12)),
                ('amount', models.DecimalField(decimal_places=2, max_digits=12)),
                ('currency', models.CharField(default='NGN', max_length=10)),
                ('status', models.CharField(
                    choices=[
                        ('PENDING_CLEARANCE', 'Pending clearance'),
                        ('AVAILABLE', 'Available'),
                        ('PAID_OUT', 'Paid out'),
                        ('FROZEN', 'Frozen'),
                    ],
                    default='PENDING_CLEARANCE',
                    max_length=20,
                )),
                ('metadata', models.JSONField(blank=True, null=True)),
                ('cleared_at', models.DateTimeField(blank=True, db_column='clearedAt', null=True)),
                ('created_at', models.DateTimeField(db_column='createdAt', default=django.utils.timezone.now)),
                ('updated_at', models.DateTimeField(auto_now=True, db_column='updatedAt')),
                ('payout', models.ForeignKey(
                    blank=True,
                    db_column='payoutId',
                    null=True,
                    on_delete=django.db.models.deletion.SET_NULL,
                    related_name='earnings',
                    to='payouts.payout',
                )),
            ],
            options={
                'db_table': 'earning',
                'indexes': [models.Index(fields=['provider_id', 'status'], name='earning_provider_status_idx')],
            },
        ),
    ]
