from typing import Optional

from django.db import IntegrityError, transaction
from django.db.models import Count, Q
from rest_framework.exceptions import NotFound, ValidationError

from care import repositories
from care.exceptions import Conflict
from care.models import Medicine, ProtocolMedicine, TreatmentProtocol
from care.services.audit import log_action
from care.services.medications import calculate_total, protocol_breakdown


def format_protocol_medicine(pm: ProtocolMedicine) -> dict:
    return {
        'id': pm.id,
        'medicineId': pm.medicine_id,
        'medicineName': pm.medicine.name,
        'unit': pm.medicine.unit,
        'price': float(pm.medicine.price),
        'dosage': pm.dosage,
        'durationValue': pm.duration_value,
        'durationUnit': pm.duration_unit,
        'schedule': pm.schedule or None,
        'notes': pm.notes,
    }


def format_protocol(p: TreatmentProtocol) -> dict:
    return {
        'id': p.id,
        'name': p.name,
        'description': p.description,
        'targetDisease': p.target_disease,
        'medicines': [format_protocol_medicine(pm) for pm in p.medicines.all()],
        'estimatedCost': float(calculate_total(p, None)),
        'createdBy': p.created_by_id,
        'updatedBy': p.updated_by_id,
        'createdAt': p.created_at.isoformat() if p.created_at else None,
        'updatedAt': p.updated_at.isoformat() if p.updated_at else None,
    }


def get_protocol(pk: int) -> TreatmentProtocol:
    protocol = repositories.protocols().filter(pk=pk).first()
    if protocol is None:
        raise NotFound(f'Protocol with ID {pk} not found')
    return protocol


def list_protocols(*, q: Optional[str] = None, target_disease: Optional[str] = None):
    qs = repositories.protocols().order_by('-created_at')
    if q:
        qs = qs.filter(Q(name__icontains=q) | Q(description__icontains=q))
    if target_disease:
        qs = qs.filter(target_disease__icontains=target_disease)
    return qs


def _medicine(medicine_id: int) -> Medicine:
    medicine = Medicine.objects.filter(pk=medicine_id).first()
    if medicine is None:
        raise ValidationError(f'Medicine with ID {medicine_id} not found')
    return medicine


def _add_medicines(protocol: TreatmentProtocol, medicines: list[dict]) -> None:
    seen = set()
    for item in medicines:
        if item['medicineId'] in seen:
            raise ValidationError(f"Medicine {item['medicineId']} listed twice in protocol")
        seen.add(item['medicineId'])
        ProtocolMedicine.objects.create(
            protocol=protocol,
            medicine=_medicine(item['medicineId']),
            dosage=item['dosage'],
            duration_value=item.get('durationValue', 1),
            duration_unit=item.get('durationUnit', 'DAY'),
            schedule=item.get('schedule') or '',
            notes=item.get('notes') or '',
        )


@transaction.atomic
def create_protocol(data: dict, *, actor=None) -> TreatmentProtocol:
    protocol = TreatmentProtocol.objects.create(
        name=data['name'],
        description=data.get('description', ''),
        target_disease=data.get('targetDisease', ''),
        created_by=actor,
        updated_by=actor,
    )
    _add_medicines(protocol, data.get('medicines') or [])
    log_action(user=actor, action='protocol_create', object_type='protocol', object_id=protocol.id)
    return get_protocol(protocol.id)


@transaction.atomic
def update_protocol(pk: int, data: dict, *, actor=None) -> TreatmentProtocol:
    protocol = get_protocol(pk)
    for key, attr in (('name', 'name'), ('description', 'description'), ('targetDisease', 'target_disease')):
        if key in data:
            setattr(protocol, attr, data[key])
    protocol.updated_by = actor
    protocol.save()
    if 'medicines' in data:
        protocol.medicines.all().delete()
        _add_medicines(protocol, data['medicines'] or [])
    log_action(user=actor, action='protocol_update', object_type='protocol', object_id=pk)
    return get_protocol(pk)


def delete_protocol(pk: int, *, actor=None) -> None:
    protocol = get_protocol(pk)
    if protocol.treatments.filter(deleted_at__isnull=True).exists():
        raise Conflict(f'Protocol {pk} is used by treatments and cannot be deleted')
    protocol.delete()
    log_action(user=actor, action='protocol_delete', object_type='protocol', object_id=pk)


def add_medicine(pk: int, item: dict, *, actor=None) -> TreatmentProtocol:
    protocol = get_protocol(pk)
    try:
        with transaction.atomic():
            _add_medicines(protocol, [item])
    except IntegrityError:
        raise Conflict(f"Medicine {item['medicineId']} is already part of protocol {pk}")
    log_action(user=actor, action='protocol_add_medicine', object_type='protocol', object_id=pk,
               detail={'medicineId': item['medicineId']})
    return get_protocol(pk)


def update_medicine(pk: int, medicine_id: int, data: dict, *, actor=None) -> TreatmentProtocol:
    entry = ProtocolMedicine.objects.filter(protocol_id=pk, medicine_id=medicine_id).first()
    if entry is None:
        raise NotFound(f'Medicine {medicine_id} is not part of protocol {pk}')
    for key, attr in (('dosage', 'dosage'), ('durationValue', 'duration_value'),
                      ('durationUnit', 'duration_unit'), ('schedule', 'schedule'), ('notes', 'notes')):
        if key in data:
            setattr(entry, attr, data[key] if data[key] is not None else '')
    entry.save()
    log_action(user=actor, action='protocol_update_medicine', object_type='protocol', object_id=pk,
               detail={'medicineId': medicine_id})
    return get_protocol(pk)


def remove_medicine(pk: int, medicine_id: int, *, actor=None) -> TreatmentProtocol:
    deleted, _ = ProtocolMedicine.objects.filter(protocol_id=pk, medicine_id=medicine_id).delete()
    if not deleted:
        raise NotFound(f'Medicine {medicine_id} is not part of protocol {pk}')
    log_action(user=actor, action='protocol_remove_medicine', object_type='protocol', object_id=pk,
               detail={'medicineId': medicine_id})
    return get_protocol(pk)


@transaction.atomic
def clone_protocol(pk: int, *, name: Optional[str] = None, actor=None) -> TreatmentProtocol:
    source = get_protocol(pk)
    clone = TreatmentProtocol.objects.create(
        name=name or f'{source.name} (Copy)',
        description=source.description,
        target_disease=source.target_disease,
        created_by=actor,
        updated_by=actor,
    )
    ProtocolMedicine.objects.bulk_create([
        ProtocolMedicine(protocol=clone, medicine_id=pm.medicine_id, dosage=pm.dosage,
                         duration_value=pm.duration_value, duration_unit=pm.duration_unit,
                         schedule=pm.schedule, notes=pm.notes)
        for pm in source.medicines.all()
    ])
    log_action(user=actor, action='protocol_clone', object_type='protocol', object_id=clone.id,
               detail={'source': pk})
    return get_protocol(clone.id)


def protocols_by_creator(user_id: int):
    return repositories.protocols().filter(created_by_id=user_id).order_by('-created_at')


def most_popular(limit: int = 5) -> list[dict]:
    qs = (repositories.protocols()
          .annotate(usage=Count('treatments', filter=Q(treatments__deleted_at__isnull=True)))
          .order_by('-usage', 'id')[:max(1, min(limit, 50))])
    return [dict(format_protocol(p), usageCount=p.usage) for p in qs]


def usage_stats(pk: int) -> dict:
    protocol = get_protocol(pk)
    qs = protocol.treatments.filter(deleted_at__isnull=True)
    total = qs.count()
    active = qs.active().count()
    customised = qs.filter(custom_medications__isnull=False).count()
    return {
        'protocolId': protocol.id,
        'protocolName': protocol.name,
        'totalTreatments': total,
        'activeTreatments': active,
        'completedTreatments': total - active,
        'customizedTreatments': customised,
        'uniquePatients': qs.values('patient_id').distinct().count(),
        'costBreakdown': protocol_breakdown(protocol),
    }
