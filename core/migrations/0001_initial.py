import decimal
import uuid

import django.core.validators
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('auth', '0012_alter_user_first_name_max_length'),
    ]

    operations = [
        migrations.CreateModel(
            name='User',
            fields=[
                ('password', models.CharField(max_length=128, verbose_name='password')),
                ('last_login', models.DateTimeField(blank=True, null=True, verbose_name='last login')),
                ('is_superuser', models.BooleanField(default=False, help_text='Designates that this user has all permissions without explicitly assigning them.', verbose_name='superuser status')),
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('phone_number', models.CharField(max_length=15, unique=True, validators=[django.core.validators.RegexValidator(message='Formato: +55DDXXXXXXXXX', regex='^\\+55[0-9]{10,11}$')], verbose_name='Telefone')),
                ('email', models.EmailField(blank=True, max_length=254, verbose_name='E-mail')),
                ('full_name', models.CharField(blank=True, max_length=150, verbose_name='Nome completo')),
                ('role', models.CharField(choices=[('ADMIN', 'Administrador'), ('CLIENT', 'Cliente'), ('COURIER', 'Motoboy'), ('BUSINESS', 'Empresa')], default='CLIENT', max_length=20, verbose_name='Tipo')),
                ('is_approved', models.BooleanField(default=False, help_text='Motoboys e empresas só operam depois da aprovação do admin', verbose_name='Aprovado')),
                ('courier_category', models.CharField(choices=[('PASSENGER', 'Passageiro'), ('DELIVERY', 'Entregas'), ('GENERAL', 'Geral')], default='GENERAL', max_length=20, verbose_name='Categoria')),
                ('online_until', models.DateTimeField(blank=True, null=True, verbose_name='Online até')),
                ('blocked_until', models.DateTimeField(blank=True, null=True, verbose_name='Bloqueado até')),
                ('vehicle_plate', models.CharField(blank=True, max_length=10, verbose_name='Placa')),
                ('vehicle_model', models.CharField(blank=True, max_length=60, verbose_name='Modelo da moto')),
                ('vehicle_color', models.CharField(blank=True, max_length=30, verbose_name='Cor da moto')),
                ('latitude', models.DecimalField(blank=True, decimal_places=6, max_digits=9, null=True)),
                ('longitude', models.DecimalField(blank=True, decimal_places=6, max_digits=9, null=True)),
                ('last_location_updated', models.DateTimeField(blank=True, null=True)),
                ('wallet_balance', models.DecimalField(decimal_places=2, default=decimal.Decimal('0.00'), max_digits=10, verbose_name='Saldo (R$)')),
                ('is_active', models.BooleanField(default=True)),
                ('is_staff', models.BooleanField(default=False)),
                ('date_joined', models.DateTimeField(auto_now_add=True)),
                ('groups', models.ManyToManyField(blank=True, help_text='The groups this user belongs to. A user will get all permissions granted to each of their groups.', related_name='user_set', related_query_name='user', to='auth.group', verbose_name='groups')),
                ('user_permissions', models.ManyToManyField(blank=True, help_text='Specific permissions for this user.', related_name='user_set', related_query_name='user', to='auth.permission', verbose_name='user permissions')),
            ],
            options={
                'verbose_name': 'Usuário',
                'verbose_name_plural': 'Usuários',
                'ordering': ['-date_joined'],
                'indexes': [
                    models.Index(fields=['role', 'is_approved', 'courier_category'], name='user_dispatch_idx'),
                    models.Index(fields=['online_until'], name='user_online_until_idx'),
                ],
            },
        ),
    ]
