BOOKINGS = [
    {
        'booking_id': 'booking_001',
        'user_id': 'user_001',
        'hospital_id': 'hospital_dmch',
        'resource_type': 'icu',
        'patient_age': 67,
        'estimated_duration_hours': 24,
        'payment_status': 'pending',
        'rapid_assistance_enabled': False,
        'created_at': '2024-10-14T10:30:00+06:00'
    },
    {
        'booking_id': 'booking_002',
        'user_id': 'user_002',
        'hospital_id': 'hospital_dmch',
        'resource_type': 'beds',
        'patient_age': 34,
        'estimated_duration_hours': 48,
        'payment_status': 'pending',
        'rapid_assistance_enabled': False,
        'created_at': '2024-10-15T08:10:00+06:00'
    },
    {
        'booking_id': 'booking_003',
        'user_id': 'user_003',
        'hospital_id': 'hospital_square',
        'resource_type': 'operationTheatres',
        'patient_age': 72.5,
        'estimated_duration_hours': 30,
        'payment_status': 'pending',
        'rapid_assistance_enabled': True,
        'created_at': '2024-10-16T21:45:00+06:00'
    }
]

HOSPITAL_PRICING = [
    {
        'hospital_id': 'hospital_dmch',
        'resource_type': 'icu',
        'base_rate': 800,
        'pricing_model': 'daily',
        'service_charge_rate': 0.25
    },
    {
        'hospital_id': 'hospital_dmch',
        'resource_type': 'beds',
        'base_rate': 1500,
        'pricing_model': 'daily',
        'minimum_charge': 1500,
        'maximum_charge': 20000,
        'service_charge_rate': 0.25
    },
    {
        'hospital_id': 'hospital_square',
        'resource_type': 'operationTheatres',
        'base_rate': 12000,
        'pricing_model': 'flat',
        'hourly_rate': 500,
        'service_charge_rate': 0.1
    }
]

BALANCES = [
    {'owner_id': 'user_001', 'balance': 10000},
    {'owner_id': 'user_002', 'balance': 5000},
    {'owner_id': 'user_003', 'balance': 50000},
    {'owner_id': 'platform', 'balance': 0},
]
