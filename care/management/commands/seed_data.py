"""
Management command to populate the database with demo data.

Creates medicines, two protocols, doctors, patients and one treatment
per patient. Running it twice does not duplicate rows.
"""
from decimal import Decimal

from django.contrib.auth.hashers import make_password
from django.core.management.base import BaseCommand
from django.db import transaction
from django.utils import timezone

from care.models import Doctor, Medicine, PatientTreatment, ProtocolMedicine, TreatmentProtocol, User
from care.services.medications import calculate_total

MEDICINES = [
    ("Paracetamol", "Pain and fever relief", "tablet", "500mg", Decimal("1.50")),
    ("Amoxicillin", "Broad spectrum antibiotic", "capsule", "500mg", Decimal("2.00")),
    ("Amlodipine", "Calcium channel blocker", "tablet", "5mg", Decimal("3.20")),
    ("Tenofovir", "Nucleotide reverse transcriptase inhibitor", "tablet", "300mg", Decimal("12.00")),
]

PROTOCOLS = [
    ("Fever Treatment", "Standard adult fever protocol", "Fever", [
        ("Paracetamol", "1 tablet", 5, "DAY", "MORNING"),
        ("Amoxicillin", "1 capsule", 7, "DAY", "AFTERNOON"),
    ]),
    ("Hypertension Treatment", "First line blood pressure control", "Hypertension", [
        ("Amlodipine", "1 tablet", 1, "MONTH", "MORNING"),
    ]),
]

DOCTORS = [
    ("dr_nguyen", "An", "Nguyen", "Infectious diseases"),
    ("dr_tran", "Binh", "Tran", "Cardiology"),
    ("dr_le", "Chi", "Le", "Internal medicine"),
    ("dr_pham", "Dung", "Pham", "General medicine"),
]

PATIENTS = [("patient_a", "Hoa", "Vu"), ("patient_b", "Khanh", "Do")]


class Command(BaseCommand):
    help = "Populate the database with demo medicines, protocols, doctors and treatments"

    @transaction.atomic
    def handle(self, *args, **options):
        self.stdout.write("Creating demo data...")
        medicines = self.create_medicines()
        protocols = self.create_protocols(medicines)
        doctors = self.create_doctors()
        self.create_patients_and_treatments(doctors, protocols)
        self.stdout.write(self.style.SUCCESS("Demo data ready."))

    def create_medicines(self):
        result = {}
        for name, description, unit, dose, price in MEDICINES:
            result[name], created = Medicine.objects.get_or_create(
                name=name, defaults={"description": description, "unit": unit, "dose": dose, "price": price})
            if created:
                self.stdout.write(f"  medicine {name}")
        return result

    def create_protocols(self, medicines):
        result = []
        for name, description, disease, entries in PROTOCOLS:
            protocol, created = TreatmentProtocol.objects.get_or_create(
                name=name, defaults={"description": description, "target_disease": disease})
            if created:
                for med, dosage, value, unit, schedule in entries:
                    ProtocolMedicine.objects.create(protocol=protocol, medicine=medicines[med], dosage=dosage,
                                                    duration_value=value, duration_unit=unit, schedule=schedule)
                self.stdout.write(f"  protocol {name}")
            result.append(protocol)
        return result

    def create_doctors(self):
        result = []
        for username, first, last, specialization in DOCTORS:
            user, _ = User.objects.get_or_create(username=username, defaults={
                "first_name": first, "last_name": last, "role": User.ROLE_DOCTOR,
                "email": f"{username}@clinic.local", "password": make_password("123456"),
            })
            doctor, _ = Doctor.objects.get_or_create(user=user, defaults={"specialization": specialization})
            result.append(doctor)
        self.stdout.write(f"  {len(result)} doctors")
        return result

    def create_patients_and_treatments(self, doctors, protocols):
        now = timezone.now()
        for index, (username, first, last) in enumerate(PATIENTS):
            patient, _ = User.objects.get_or_create(username=username, defaults={
                "first_name": first, "last_name": last, "role": User.ROLE_PATIENT,
                "password": make_password("123456"),
            })
            if PatientTreatment.objects.filter(patient=patient).exists():
                continue
            protocol = protocols[index % len(protocols)]
            PatientTreatment.objects.create(
                patient=patient,
                doctor=doctors[index % len(doctors)],
                protocol=protocol,
                start_date=now,
                total=calculate_total(protocol, None),
                notes="Seeded treatment",
            )
            self.stdout.write(f"  treatment for {username}")
