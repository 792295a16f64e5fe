from .stock import (
    Armory,
    StockLine,
    WeaponLine,
    AmmunitionLine,
    EquipmentLine,
    LINE_CLASSES,
    make_item_key,
)
from .directory import Officer
from .distribution import Distribution, IssuedItem, RenewalRecord
from .ledger import ArmoryLedgerEvent, DocumentSequence

__all__ = [
    'Armory', 'StockLine', 'WeaponLine', 'AmmunitionLine', 'EquipmentLine',
    'LINE_CLASSES', 'make_item_key',
    'Officer',
    'Distribution', 'IssuedItem', 'RenewalRecord',
    'ArmoryLedgerEvent', 'DocumentSequence',
]
