from decimal import Decimal

from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name='PricingRule',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('vehicle_type', models.CharField(db_index=True, max_length=30)),
                ('base_fare', models.DecimalField(decimal_places=2, max_digits=10)),
                ('per_km', models.DecimalField(decimal_places=2, max_digits=10)),
                ('per_minute', models.DecimalField(decimal_places=2, default=Decimal('0'), max_digits=10)),
                ('waiting_per_minute', models.DecimalField(decimal_places=2, default=Decimal('0'), max_digits=10)),
                ('minimum_fare', models.DecimalField(decimal_places=2, default=Decimal('0'), max_digits=10)),
                ('maximum_fare', models.DecimalField(blank=True, decimal_places=2, max_digits=10, null=True)),
                ('surge_multiplier', models.DecimalField(decimal_places=2, default=Decimal('1.00'), max_digits=4)),
                ('is_active', models.BooleanField(default=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'db_table': 'pricing_rules',
                'ordering': ['-updated_at'],
            },
        ),
    ]
