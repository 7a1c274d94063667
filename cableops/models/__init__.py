from .action_request import ActionRequest
from .actor import Actor
from .area import Area
from .bill import MonthlyBill
from .customer import Connection, Customer, StatusLog
from .package import Package
from .payment import Payment
from .vc_inventory import VCInventoryItem
