"""Inventory updates: command and handler."""

import json

from protean import handle
from protean.exceptions import ValidationError
from protean.fields import Identifier, Text
from protean.utils.globals import current_domain

from pharmacy.domain import pharmacy
from pharmacy.pharmacy.access import authorize_staff
from pharmacy.pharmacy.pharmacy import Pharmacy, StaffPermission


@pharmacy.command(part_of="Pharmacy")
class UpdateInventory:
    """Upsert stock records for one or more medications."""

    pharmacy_id = Identifier(required=True)
    staff_id = Identifier(required=True)
    updates = Text(required=True)  # JSON list of {medication_name, is_in_stock, quantity, generic_name}


@pharmacy.command_handler(part_of=Pharmacy)
class InventoryHandler:
    @handle(UpdateInventory)
    def update_inventory(self, command):
        ph, _ = authorize_staff(command.pharmacy_id, command.staff_id, StaffPermission.MANAGE_INVENTORY)

        updates = json.loads(command.updates)
        if not updates:
            raise ValidationError({"updates": ["At least one inventory update is required"]})

        for update in updates:
            ph.upsert_inventory(
                medication_name=update["medication_name"],
                is_in_stock=bool(update.get("is_in_stock", True)),
                quantity=int(update.get("quantity", 0)),
                generic_name=update.get("generic_name"),
                updated_by=command.staff_id,
            )
        current_domain.repository_for(Pharmacy).add(ph)
        return ph
