from stockdesk.models.audit_log import AuditLog
from stockdesk.models.supplier import Supplier
from stockdesk.models.customer import Customer
from stockdesk.models.part import Part
from stockdesk.models.bill import Bill
from stockdesk.models.serial import Serial
from stockdesk.models.movement import SerialMovement
