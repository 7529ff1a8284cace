from decimal import Decimal
from typing import Optional

from rest_framework.exceptions import NotFound, ValidationError

from care.exceptions import Conflict
from care.models import Medicine
from care.services.audit import log_action


def format_medicine(m: Medicine) -> dict:
    return {
        'id': m.id,
        'name': m.name,
        'description': m.description,
        'unit': m.unit,
        'dose': m.dose,
        'price': float(m.price),
        'createdAt': m.created_at.isoformat() if m.created_at else None,
        'updatedAt': m.updated_at.isoformat() if m.updated_at else None,
    }


def get_medicine(pk: int) -> Medicine:
    medicine = Medicine.objects.filter(pk=pk).first()
    if medicine is None:
        raise NotFound(f'Medicine with ID {pk} not found')
    return medicine


def list_medicines(*, q: Optional[str] = None, min_price: Optional[Decimal] = None,
                   max_price: Optional[Decimal] = None):
    if min_price is not None and max_price is not None and min_price > max_price:
        raise ValidationError('minPrice must not exceed maxPrice')
    qs = Medicine.objects.all().order_by('name')
    if q:
        qs = qs.filter(name__icontains=q)
    if min_price is not None:
        qs = qs.filter(price__gte=min_price)
    if max_price is not None:
        qs = qs.filter(price__lte=max_price)
    return qs


def create_medicine(data: dict, *, actor=None) -> Medicine:
    medicine = Medicine.objects.create(
        name=data['name'],
        description=data.get('description', ''),
        unit=data.get('unit', ''),
        dose=data.get('dose', ''),
        price=data.get('price', Decimal('0')),
    )
    log_action(user=actor, action='medicine_create', object_type='medicine', object_id=medicine.id)
    return medicine


def update_medicine(pk: int, data: dict, *, actor=None) -> Medicine:
    medicine = get_medicine(pk)
    for field in ('name', 'description', 'unit', 'dose', 'price'):
        if field in data:
            setattr(medicine, field, data[field])
    medicine.save()
    log_action(user=actor, action='medicine_update', object_type='medicine', object_id=pk)
    return medicine


def delete_medicine(pk: int, *, actor=None) -> None:
    medicine = get_medicine(pk)
    if medicine.protocol_entries.exists():
        raise Conflict(f'Medicine {pk} is used by a protocol and cannot be deleted')
    medicine.delete()
    log_action(user=actor, action='medicine_delete', object_type='medicine', object_id=pk)
