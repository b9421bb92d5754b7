from repairflow.services.updaters.admins import AdminsUpdater
from repairflow.services.updaters.comments import CommentsUpdater
from repairflow.services.updaters.locations import DeliveryUpdater, PickupUpdater
from repairflow.services.updaters.problems import FinalProblemsUpdater, InitialProblemsUpdater
from repairflow.services.updaters.rental_phone import RentalPhoneUpdater

__all__ = [
    'AdminsUpdater', 'CommentsUpdater', 'DeliveryUpdater', 'PickupUpdater',
    'FinalProblemsUpdater', 'InitialProblemsUpdater', 'RentalPhoneUpdater',
]
