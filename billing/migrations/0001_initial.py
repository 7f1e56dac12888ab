import decimal

import django.contrib.auth.models
import django.contrib.auth.validators
import django.core.validators
import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
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
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('password', models.CharField(max_length=128, verbose_name='password')),
                ('last_login', models.DateTimeField(blank=True, null=True, verbose_name='last login')),
                ('is_superuser', models.BooleanField(default=False, help_text='Designates that this user has all permissions without explicitly assigning them.', verbose_name='superuser status')),
                ('username', models.CharField(error_messages={'unique': 'A user with that username already exists.'}, help_text='Required. 150 characters or fewer. Letters, digits and @/./+/-/_ only.', max_length=150, unique=True, validators=[django.contrib.auth.validators.UnicodeUsernameValidator()], verbose_name='username')),
                ('first_name', models.CharField(blank=True, max_length=150, verbose_name='first name')),
                ('last_name', models.CharField(blank=True, max_length=150, verbose_name='last name')),
                ('email', models.EmailField(blank=True, max_length=254, verbose_name='email address')),
                ('is_staff', models.BooleanField(default=False, help_text='Designates whether the user can log into this admin site.', verbose_name='staff status')),
                ('is_active', models.BooleanField(default=True, help_text='Designates whether this user should be treated as active. Unselect this instead of deleting accounts.', verbose_name='active')),
                ('date_joined', models.DateTimeField(default=django.utils.timezone.now, verbose_name='date joined')),
                ('role', models.CharField(choices=[('admin', 'Administrator'), ('cashier', 'Cashier'), ('reception', 'Reception'), ('doctor', 'Doctor')], default='reception', max_length=16)),
                ('groups', models.ManyToManyField(blank=True, help_text='The groups this user belongs to. A user will get all permissions granted to each of their groups.', related_name='user_set', related_query_name='user', to='auth.group', verbose_name='groups')),
                ('user_permissions', models.ManyToManyField(blank=True, help_text='Specific permissions for this user.', related_name='user_set', related_query_name='user', to='auth.permission', verbose_name='user permissions')),
            ],
            options={
                'verbose_name': 'user',
                'verbose_name_plural': 'users',
                'abstract': False,
            },
            managers=[
                ('objects', django.contrib.auth.models.UserManager()),
            ],
        ),
        migrations.CreateModel(
            name='Patient',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('first_name', models.CharField(max_length=120)),
                ('last_name', models.CharField(max_length=120)),
                ('identity_number', models.CharField(max_length=32, unique=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
            ],
        ),
        migrations.CreateModel(
            name='PriceItem',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(max_length=255)),
                ('kind', models.CharField(choices=[('service', 'Service'), ('daily_rate', 'Daily rate'), ('product', 'Product')], db_index=True, default='service', max_length=16)),
                ('base_price', models.DecimalField(decimal_places=2, max_digits=12, validators=[django.core.validators.MinValueValidator(decimal.Decimal('0'))])),
                ('is_active', models.BooleanField(default=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
            ],
            options={
                'constraints': [models.CheckConstraint(condition=models.Q(('base_price__gte', 0)), name='price_item_base_price_non_negative')],
            },
        ),
        migrations.CreateModel(
            name='PriceVariant',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(max_length=255)),
                ('price', models.DecimalField(decimal_places=2, max_digits=12, validators=[django.core.validators.MinValueValidator(decimal.Decimal('0'))])),
                ('is_active', models.BooleanField(default=True)),
                ('item', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='variants', to='billing.priceitem')),
            ],
            options={
                'constraints': [models.CheckConstraint(condition=models.Q(('price__gte', 0)), name='price_variant_price_non_negative')],
            },
        ),
        migrations.CreateModel(
            name='Stay',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('admitted_at', models.DateTimeField()),
                ('discharged_at', models.DateTimeField(blank=True, null=True)),
                ('frozen_daily_rate', models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True)),
                ('status', models.CharField(choices=[('active', 'Active'), ('discharged', 'Discharged')], db_index=True, default='active', max_length=16)),
                ('notes', models.TextField(blank=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('patient', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='stays', to='billing.patient')),
                ('rate_item', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name='stays', to='billing.priceitem')),
                ('rate_variant', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name='stays', to='billing.pricevariant')),
            ],
            options={
                'constraints': [
                    models.CheckConstraint(condition=models.Q(('discharged_at__isnull', True), ('discharged_at__gte', models.F('admitted_at')), _connector='OR'), name='stay_discharge_after_admission'),
                    models.CheckConstraint(condition=models.Q(models.Q(('discharged_at__isnull', True), ('status', 'active')), models.Q(('discharged_at__isnull', False), ('status', 'discharged')), _connector='OR'), name='stay_status_matches_discharge'),
                ],
            },
        ),
        migrations.CreateModel(
            name='Payment',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('source_kind', models.CharField(choices=[('consultation', 'Consultation'), ('sale', 'Sale'), ('hospitalization', 'Hospitalization'), ('surgery', 'Surgery')], max_length=20)),
                ('source_id', models.PositiveBigIntegerField()),
                ('total', models.DecimalField(decimal_places=2, max_digits=12)),
                ('status', models.CharField(choices=[('pending', 'Pending'), ('paid', 'Paid'), ('cancelled', 'Cancelled')], db_index=True, default='pending', max_length=16)),
                ('is_active', models.BooleanField(default=True)),
                ('covered_start', models.DateField(blank=True, null=True)),
                ('covered_end', models.DateField(blank=True, null=True)),
                ('days_count', models.PositiveIntegerField(blank=True, null=True)),
                ('notes', models.TextField(blank=True)),
                ('cancel_reason', models.CharField(blank=True, max_length=255)),
                ('cancelled_at', models.DateTimeField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('created_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='payments_created', to=settings.AUTH_USER_MODEL)),
                ('patient', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='payments', to='billing.patient')),
            ],
            options={
                'indexes': [
                    models.Index(fields=['source_kind', 'source_id'], name='billing_pay_source__6d1c2a_idx'),
                    models.Index(fields=['patient', 'created_at'], name='billing_pay_patient_3f0b7e_idx'),
                ],
                'constraints': [
                    models.CheckConstraint(condition=models.Q(('source_kind__in', ['consultation', 'sale', 'hospitalization', 'surgery'])), name='payment_known_source_kind'),
                    models.CheckConstraint(condition=models.Q(('total__gte', 0)), name='payment_total_non_negative'),
                    models.CheckConstraint(condition=models.Q(models.Q(('covered_end__isnull', True), ('covered_start__isnull', True)), models.Q(('covered_end__isnull', False), ('covered_start__isnull', False), ('covered_start__lte', models.F('covered_end')), ('source_kind', 'hospitalization')), _connector='OR'), name='payment_coverage_well_formed'),
                ],
            },
        ),
        migrations.CreateModel(
            name='BilledDay',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('day', models.DateField()),
                ('payment', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='billed_days', to='billing.payment')),
                ('stay', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='billed_days', to='billing.stay')),
            ],
            options={
                'constraints': [models.UniqueConstraint(fields=('stay', 'day'), name='billed_day_unique_per_stay')],
            },
        ),
        migrations.CreateModel(
            name='InvoiceRange',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('authorization_code', models.CharField(max_length=64, unique=True)),
                ('taxpayer_rtn', models.CharField(blank=True, max_length=20)),
                ('legal_name', models.CharField(blank=True, max_length=255)),
                ('trade_name', models.CharField(blank=True, max_length=255)),
                ('emission_point', models.CharField(blank=True, max_length=3)),
                ('number_prefix', models.CharField(blank=True, help_text="e.g. '000-001-01'", max_length=16)),
                ('range_start', models.PositiveBigIntegerField(validators=[django.core.validators.MinValueValidator(1)])),
                ('range_end', models.PositiveBigIntegerField(validators=[django.core.validators.MinValueValidator(1)])),
                ('authorized_quantity', models.PositiveBigIntegerField()),
                ('next_number', models.PositiveBigIntegerField()),
                ('deadline', models.DateField(help_text='Last day on which documents may be issued')),
                ('state', models.CharField(choices=[('active', 'Active'), ('exhausted', 'Exhausted'), ('expired', 'Expired'), ('inactive', 'Inactive')], db_index=True, default='inactive', max_length=16)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'constraints': [
                    models.CheckConstraint(condition=models.Q(('range_start__lte', models.F('range_end'))), name='invoice_range_bounds_ordered'),
                    models.CheckConstraint(condition=models.Q(('next_number__gte', models.F('range_start')), ('next_number__lte', models.F('range_end') + 1)), name='invoice_range_pointer_within_bounds'),
                    models.UniqueConstraint(condition=models.Q(('state', 'active')), fields=('state',), name='invoice_range_single_active'),
                ],
            },
        ),
        migrations.CreateModel(
            name='DocumentSequence',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(max_length=32, unique=True)),
                ('last_value', models.PositiveBigIntegerField(default=0)),
            ],
        ),
        migrations.CreateModel(
            name='Invoice',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('document_type', models.CharField(choices=[('legal', 'Legal invoice'), ('simple', 'Simple receipt')], max_length=8)),
                ('number', models.PositiveBigIntegerField()),
                ('document_number', models.CharField(max_length=32, unique=True)),
                ('authorization_code', models.CharField(blank=True, max_length=64)),
                ('issuer_name', models.CharField(blank=True, max_length=255)),
                ('issuer_rtn', models.CharField(blank=True, max_length=20)),
                ('customer_name', models.CharField(blank=True, max_length=255)),
                ('customer_tax_id', models.CharField(blank=True, max_length=20)),
                ('total', models.DecimalField(decimal_places=2, max_digits=12)),
                ('notes', models.TextField(blank=True)),
                ('issued_at', models.DateTimeField(auto_now_add=True)),
                ('invoice_range', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name='invoices', to='billing.invoicerange')),
                ('issued_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='invoices_issued', to=settings.AUTH_USER_MODEL)),
                ('payment', models.OneToOneField(on_delete=django.db.models.deletion.PROTECT, related_name='invoice', to='billing.payment')),
            ],
            options={
                'constraints': [
                    models.CheckConstraint(condition=models.Q(models.Q(('document_type', 'legal'), ('invoice_range__isnull', False)), models.Q(('document_type', 'simple'), ('invoice_range__isnull', True)), _connector='OR'), name='invoice_range_only_for_legal'),
                    models.UniqueConstraint(condition=models.Q(('document_type', 'legal')), fields=('invoice_range', 'number'), name='invoice_legal_number_unique_per_range'),
                ],
            },
        ),
        migrations.CreateModel(
            name='NumberReservation',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('document_type', models.CharField(choices=[('legal', 'Legal invoice'), ('simple', 'Simple receipt')], max_length=8)),
                ('number', models.PositiveBigIntegerField()),
                ('document_number', models.CharField(max_length=32, unique=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('invoice_range', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name='reservations', to='billing.invoicerange')),
                ('payment', models.OneToOneField(on_delete=django.db.models.deletion.PROTECT, related_name='number_reservation', to='billing.payment')),
            ],
        ),
        migrations.CreateModel(
            name='AuditEvent',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('action', models.CharField(max_length=64)),
                ('object_type', models.CharField(blank=True, max_length=64, null=True)),
                ('object_id', models.BigIntegerField(blank=True, null=True)),
                ('detail', models.JSONField(blank=True, default=dict)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('user', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'indexes': [
                    models.Index(fields=['action', 'created_at'], name='billing_aud_action_2b9e41_idx'),
                    models.Index(fields=['object_type', 'object_id', 'created_at'], name='billing_aud_object__8c5d0f_idx'),
                ],
            },
        ),
    ]
