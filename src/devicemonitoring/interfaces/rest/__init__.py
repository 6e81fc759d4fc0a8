from .device_controller import DeviceController
from .blood_pressure_controller import BloodPressureController
from .ecg_controller import EcgController
from .oximeter_controller import OximeterController
from .glucose_controller import GlucoseController
from .lepu_controller import LepuController

__all__ = [
    'DeviceController',
    'BloodPressureController',
    'EcgController',
    'OximeterController',
    'GlucoseController',
    'LepuController'
]
