import uuid

import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
        ('logistics', '0001_initial'),
    ]

    operations = [
        migrations.CreateModel(
            name='Transaction',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('transaction_type', models.CharField(choices=[('RIDE_CREDIT', 'Ganho de corrida'), ('COMMISSION', 'Taxa da plataforma')], max_length=20, verbose_name='Tipo')),
                ('amount', models.DecimalField(decimal_places=2, max_digits=10, verbose_name='Valor (R$)')),
                ('balance_before', models.DecimalField(decimal_places=2, max_digits=10, verbose_name='Saldo antes')),
                ('balance_after', models.DecimalField(decimal_places=2, max_digits=10, verbose_name='Saldo depois')),
                ('status', models.CharField(choices=[('PENDING', 'Pendente'), ('COMPLETED', 'Confirmada'), ('FAILED', 'Falhou'), ('REVERSED', 'Estornada')], default='COMPLETED', max_length=20, verbose_name='Status')),
                ('description', models.CharField(blank=True, max_length=255, verbose_name='Descrição')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('ride', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='transactions', to='logistics.ride', verbose_name='Corrida')),
                ('user', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='transactions', to=settings.AUTH_USER_MODEL, verbose_name='Usuário')),
            ],
            options={
                'verbose_name': 'Transação',
                'verbose_name_plural': 'Transações',
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['user', 'created_at'], name='txn_user_created_idx'),
                    models.Index(fields=['transaction_type', 'status'], name='txn_type_status_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='RidePayment',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('amount', models.DecimalField(decimal_places=2, max_digits=10, verbose_name='Valor (R$)')),
                ('status', models.CharField(choices=[('PENDING', 'Pendente'), ('APPROVED', 'Aprovado'), ('REJECTED', 'Recusado'), ('CANCELLED', 'Cancelado')], default='PENDING', max_length=20, verbose_name='Status')),
                ('provider_payment_id', models.CharField(max_length=64, unique=True, verbose_name='ID do pagamento (Mercado Pago)')),
                ('provider_status', models.CharField(blank=True, max_length=40)),
                ('qr_code', models.TextField(blank=True, verbose_name='PIX copia e cola')),
                ('qr_code_base64', models.TextField(blank=True)),
                ('callback_received', models.BooleanField(default=False)),
                ('callback_data', models.JSONField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('confirmed_at', models.DateTimeField(blank=True, null=True)),
                ('ride', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='payments', to='logistics.ride', verbose_name='Corrida')),
            ],
            options={
                'verbose_name': 'Pagamento PIX',
                'verbose_name_plural': 'Pagamentos PIX',
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['ride', 'status'], name='ridepayment_ride_status_idx'),
                ],
            },
        ),
    ]
