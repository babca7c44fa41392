import decimal
import uuid

import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='Ride',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('origin', models.CharField(max_length=255, verbose_name='Origem')),
                ('destination', models.CharField(max_length=255, verbose_name='Destino')),
                ('service_kind', models.CharField(help_text='moto_taxi ou delivery; outros valores não são despachados', max_length=20, verbose_name='Tipo de serviço')),
                ('status', models.CharField(choices=[('PENDING', 'Pendente'), ('AWAITING_PAYMENT', 'Aguardando pagamento'), ('RELEASED', 'Liberada'), ('IN_PROGRESS', 'Em andamento'), ('COMPLETED', 'Finalizada'), ('CANCELLED', 'Cancelada'), ('EXPIRED', 'Encerrada por timeout')], db_index=True, default='PENDING', max_length=20, verbose_name='Status')),
                ('dispatch_cycle', models.PositiveIntegerField(default=1, verbose_name='Ciclo de distribuição')),
                ('price', models.DecimalField(decimal_places=2, max_digits=10, verbose_name='Valor (R$)')),
                ('payment_method', models.CharField(blank=True, choices=[('CASH', 'Dinheiro (Cliente → Motoboy)'), ('PIX', 'PIX (Mercado Pago)')], max_length=10, null=True, verbose_name='Forma de pagamento')),
                ('platform_fee', models.DecimalField(decimal_places=2, default=decimal.Decimal('0.00'), max_digits=10, verbose_name='Taxa da plataforma (R$)')),
                ('courier_earning', models.DecimalField(decimal_places=2, default=decimal.Decimal('0.00'), max_digits=10, verbose_name='Ganho do motoboy (R$)')),
                ('security_code', models.CharField(blank=True, max_length=4, verbose_name='Código de segurança')),
                ('cancellation_reason', models.CharField(blank=True, max_length=255, verbose_name='Motivo do cancelamento')),
                ('cancelled_by', models.CharField(blank=True, choices=[('CLIENT', 'Cliente'), ('COURIER', 'Motoboy'), ('ADMIN', 'Administrador'), ('SYSTEM', 'Sistema')], max_length=10, verbose_name='Cancelada por')),
                ('created_at', models.DateTimeField(db_index=True, default=django.utils.timezone.now)),
                ('assigned_at', models.DateTimeField(blank=True, null=True)),
                ('released_at', models.DateTimeField(blank=True, null=True)),
                ('started_at', models.DateTimeField(blank=True, null=True)),
                ('completed_at', models.DateTimeField(blank=True, null=True)),
                ('cancelled_at', models.DateTimeField(blank=True, null=True)),
                ('client', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='requested_rides', to=settings.AUTH_USER_MODEL, verbose_name='Cliente')),
                ('courier', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='assigned_rides', to=settings.AUTH_USER_MODEL, verbose_name='Motoboy')),
            ],
            options={
                'verbose_name': 'Corrida',
                'verbose_name_plural': 'Corridas',
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['status', 'created_at'], name='ride_status_created_idx'),
                    models.Index(fields=['courier', 'status'], name='ride_courier_status_idx'),
                ],
                'constraints': [
                    models.UniqueConstraint(condition=models.Q(('status__in', ('AWAITING_PAYMENT', 'RELEASED', 'IN_PROGRESS'))), fields=('courier',), name='one_active_ride_per_courier'),
                ],
            },
        ),
        migrations.CreateModel(
            name='RideExposure',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('cycle', models.PositiveIntegerField(default=1)),
                ('exposed_at', models.DateTimeField(default=django.utils.timezone.now)),
                ('lapsed_at', models.DateTimeField(blank=True, null=True)),
                ('courier', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='ride_exposures', to=settings.AUTH_USER_MODEL)),
                ('ride', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='exposures', to='logistics.ride')),
            ],
            options={
                'verbose_name': 'Exposição de corrida',
                'verbose_name_plural': 'Exposições de corridas',
                'ordering': ['exposed_at'],
                'indexes': [
                    models.Index(fields=['courier', 'lapsed_at', 'exposed_at'], name='exposure_courier_state_idx'),
                ],
                'constraints': [
                    models.UniqueConstraint(fields=('ride', 'courier'), name='unique_ride_courier_exposure'),
                ],
            },
        ),
        migrations.CreateModel(
            name='RideMessage',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('text', models.TextField(max_length=1000)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('ride', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='messages', to='logistics.ride')),
                ('sender', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='ride_messages', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'verbose_name': 'Mensagem',
                'verbose_name_plural': 'Mensagens',
                'ordering': ['created_at'],
            },
        ),
    ]
