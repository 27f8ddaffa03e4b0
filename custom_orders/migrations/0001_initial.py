import custom_orders.models
from decimal import Decimal
from django.conf import settings
from django.db import migrations, models
import django.db.models.deletion


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
        ('orders', '0001_initial'),
    ]

    operations = [
        migrations.CreateModel(
            name='CustomOrder',
            fields=[
                ('id', models.CharField(default=custom_orders.models.generate_custom_order_id, editable=False, max_length=64, primary_key=True, serialize=False)),
                ('user_email', models.EmailField(blank=True, default='', max_length=254)),
                ('design_type', models.CharField(max_length=100)),
                ('occasion', models.CharField(blank=True, default='', max_length=100)),
                ('style_description', models.TextField(blank=True, default='')),
                ('fabric_type', models.CharField(blank=True, default='', max_length=100)),
                ('fabric_color', models.CharField(blank=True, default='', max_length=50)),
                ('measurements', models.JSONField(blank=True, default=dict)),
                ('special_requests', models.TextField(blank=True, default='')),
                ('event_date', models.DateField(blank=True, null=True)),
                ('total_price', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=12)),
                ('status', models.CharField(choices=[('consultation', 'Consultation'), ('confirmed', 'Confirmed'), ('design', 'Design'), ('measurement', 'Measurement'), ('production', 'Production'), ('fitting', 'Fitting'), ('ready', 'Ready'), ('shipped', 'Shipped'), ('delivered', 'Delivered'), ('cancelled', 'Cancelled')], db_index=True, default='consultation', max_length=20)),
                ('created_at', models.DateTimeField(auto_now_add=True, db_index=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('order', models.ForeignKey(blank=True, help_text='Purchase order this design was bound into', null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='custom_orders', to='orders.order')),
                ('user', models.ForeignKey(help_text='Customer who requested the design', on_delete=django.db.models.deletion.CASCADE, related_name='custom_orders', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'verbose_name': 'Custom Order',
                'verbose_name_plural': 'Custom Orders',
                'ordering': ['-created_at'],
            },
        ),
    ]
