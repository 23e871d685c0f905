# plugins/e3dc/e3dc_plugin_constants.py
"""
E3DC RSCP Constants and Tag Definitions

This module collects the RSCP tag numbers, model table and cell-data thresholds
used to query an E3DC storage system (S10 family) over its local RSCP interface.

Tag Categories:
- EMS_*: energy management system (power flows, autarky, power settings, system specs)
- INFO_*: device identity (serial number, MAC/IP address, software release)
- BAT_*: battery and DCB (DC battery controller) telemetry
- DB_*: the device's history database (daily sums)

Protocol Notes:
- Tag numbers come from the `RscpTag` table shipped with pye3dc, so request and
  data tags always match the library that frames them on the wire.
- A response item carries the request tag with bit 23 set (0x00800000), which is
  how the `*_REQ_*` request tags below are paired with their answers.
"""
from e3dc._rscpTags import RscpTag

RESPONSE_FLAG = 0x00800000


def response_tag(request_tag: int) -> int:
    """Returns the tag under which the device answers `request_tag`."""
    return request_tag | RESPONSE_FLAG


# --- EMS: live power flows (requested every status tick) ---
EMS_REQ_POWER_PV = RscpTag.EMS_REQ_POWER_PV.value
EMS_REQ_POWER_BAT = RscpTag.EMS_REQ_POWER_BAT.value
EMS_REQ_POWER_HOME = RscpTag.EMS_REQ_POWER_HOME.value
EMS_REQ_POWER_GRID = RscpTag.EMS_REQ_POWER_GRID.value
EMS_REQ_POWER_ADD = RscpTag.EMS_REQ_POWER_ADD.value
EMS_REQ_POWER_WB_ALL = RscpTag.EMS_REQ_POWER_WB_ALL.value
EMS_REQ_BAT_SOC = RscpTag.EMS_REQ_BAT_SOC.value
EMS_REQ_AUTARKY = RscpTag.EMS_REQ_AUTARKY.value
EMS_REQ_SELF_CONSUMPTION = RscpTag.EMS_REQ_SELF_CONSUMPTION.value

STATUS_REQUEST_TAGS = (
    EMS_REQ_POWER_PV, EMS_REQ_POWER_BAT, EMS_REQ_POWER_GRID, EMS_REQ_POWER_HOME,
    EMS_REQ_BAT_SOC, EMS_REQ_AUTARKY, EMS_REQ_SELF_CONSUMPTION, EMS_REQ_POWER_WB_ALL,
    EMS_REQ_POWER_ADD,
)

# --- EMS: static system values ---
EMS_REQ_DERATE_AT_PERCENT_VALUE = RscpTag.EMS_REQ_DERATE_AT_PERCENT_VALUE.value
EMS_REQ_DERATE_AT_POWER_VALUE = RscpTag.EMS_REQ_DERATE_AT_POWER_VALUE.value
EMS_REQ_INSTALLED_PEAK_POWER = RscpTag.EMS_REQ_INSTALLED_PEAK_POWER.value
EMS_REQ_EXT_SRC_AVAILABLE = RscpTag.EMS_REQ_EXT_SRC_AVAILABLE.value

# --- EMS: power settings container ---
EMS_REQ_GET_POWER_SETTINGS = RscpTag.EMS_REQ_GET_POWER_SETTINGS.value
EMS_MAX_CHARGE_POWER = RscpTag.EMS_MAX_CHARGE_POWER.value
EMS_MAX_DISCHARGE_POWER = RscpTag.EMS_MAX_DISCHARGE_POWER.value
EMS_DISCHARGE_START_POWER = RscpTag.EMS_DISCHARGE_START_POWER.value
EMS_POWER_LIMITS_USED = RscpTag.EMS_POWER_LIMITS_USED.value
EMS_POWERSAVE_ENABLED = RscpTag.EMS_POWERSAVE_ENABLED.value
EMS_WEATHER_FORECAST_MODE = RscpTag.EMS_WEATHER_FORECAST_MODE.value
EMS_WEATHER_REGULATED_CHARGE_ENABLED = RscpTag.EMS_WEATHER_REGULATED_CHARGE_ENABLED.value

# --- EMS: system specification list ---
EMS_REQ_GET_SYS_SPECS = RscpTag.EMS_REQ_GET_SYS_SPECS.value
EMS_SYS_SPEC = RscpTag.EMS_SYS_SPEC.value
EMS_SYS_SPEC_NAME = RscpTag.EMS_SYS_SPEC_NAME.value
EMS_SYS_SPEC_VALUE_INT = RscpTag.EMS_SYS_SPEC_VALUE_INT.value

SYS_SPEC_INSTALLED_BATTERY_CAPACITY = "installedBatteryCapacity"
SYS_SPEC_MAX_AC_POWER = "maxAcPower"
SYS_SPEC_MAX_BAT_CHARGE_POWER = "maxBatChargePower"
SYS_SPEC_MAX_BAT_DISCHARGE_POWER = "maxBatDischargPower"  # sic, firmware spelling

# --- INFO ---
INFO_REQ_SERIAL_NUMBER = RscpTag.INFO_REQ_SERIAL_NUMBER.value
INFO_REQ_MAC_ADDRESS = RscpTag.INFO_REQ_MAC_ADDRESS.value
INFO_REQ_IP_ADDRESS = RscpTag.INFO_REQ_IP_ADDRESS.value
INFO_REQ_SW_RELEASE = RscpTag.INFO_REQ_SW_RELEASE.value

# --- BAT: discovery and identity ---
BAT_REQ_AVAILABLE_BATTERIES = RscpTag.BAT_REQ_AVAILABLE_BATTERIES.value
BAT_REQ_DATA = RscpTag.BAT_REQ_DATA.value
BAT_DATA = RscpTag.BAT_DATA.value
BAT_INDEX = RscpTag.BAT_INDEX.value
BAT_PARAM_BAT_NUMBER = RscpTag.BAT_PARAM_BAT_NUMBER.value
BAT_DEVICE_NAME = RscpTag.BAT_DEVICE_NAME.value
BAT_MANUFACTURER_NAME = RscpTag.BAT_MANUFACTURER_NAME.value
BAT_SERIALNO = RscpTag.BAT_SERIALNO.value
BAT_INSTANCE_DESCRIPTOR = RscpTag.BAT_INSTANCE_DESCRIPTOR.value
BAT_REQ_DCB_COUNT = RscpTag.BAT_REQ_DCB_COUNT.value

# --- BAT: per-battery telemetry, in request order ---
BAT_REQ_RSOC = RscpTag.BAT_REQ_RSOC.value
BAT_REQ_RSOC_REAL = RscpTag.BAT_REQ_RSOC_REAL.value
BAT_REQ_ASOC = RscpTag.BAT_REQ_ASOC.value
BAT_REQ_CURRENT = RscpTag.BAT_REQ_CURRENT.value
BAT_REQ_MODULE_VOLTAGE = RscpTag.BAT_REQ_MODULE_VOLTAGE.value
BAT_REQ_TERMINAL_VOLTAGE = RscpTag.BAT_REQ_TERMINAL_VOLTAGE.value
BAT_REQ_MAX_BAT_VOLTAGE = RscpTag.BAT_REQ_MAX_BAT_VOLTAGE.value
BAT_REQ_EOD_VOLTAGE = RscpTag.BAT_REQ_EOD_VOLTAGE.value
BAT_REQ_FCC = RscpTag.BAT_REQ_FCC.value
BAT_REQ_RC = RscpTag.BAT_REQ_RC.value
BAT_REQ_DESIGN_CAPACITY = RscpTag.BAT_REQ_DESIGN_CAPACITY.value
BAT_REQ_USABLE_CAPACITY = RscpTag.BAT_REQ_USABLE_CAPACITY.value
BAT_REQ_USABLE_REMAINING_CAPACITY = RscpTag.BAT_REQ_USABLE_REMAINING_CAPACITY.value
BAT_REQ_MAX_CHARGE_CURRENT = RscpTag.BAT_REQ_MAX_CHARGE_CURRENT.value
BAT_REQ_MAX_DISCHARGE_CURRENT = RscpTag.BAT_REQ_MAX_DISCHARGE_CURRENT.value
BAT_REQ_MAX_DCB_CELL_TEMPERATURE = RscpTag.BAT_REQ_MAX_DCB_CELL_TEMPERATURE.value
BAT_REQ_MIN_DCB_CELL_TEMPERATURE = RscpTag.BAT_REQ_MIN_DCB_CELL_TEMPERATURE.value
BAT_REQ_STATUS_CODE = RscpTag.BAT_REQ_STATUS_CODE.value
BAT_REQ_ERROR_CODE = RscpTag.BAT_REQ_ERROR_CODE.value
BAT_REQ_CHARGE_CYCLES = RscpTag.BAT_REQ_CHARGE_CYCLES.value
BAT_REQ_TOTAL_USE_TIME = RscpTag.BAT_REQ_TOTAL_USE_TIME.value
BAT_REQ_TOTAL_DISCHARGE_TIME = RscpTag.BAT_REQ_TOTAL_DISCHARGE_TIME.value
BAT_REQ_READY_FOR_SHUTDOWN = RscpTag.BAT_REQ_READY_FOR_SHUTDOWN.value
BAT_REQ_TRAINING_MODE = RscpTag.BAT_REQ_TRAINING_MODE.value

BATTERY_DATA_REQUEST_TAGS = (
    BAT_REQ_RSOC, BAT_REQ_RSOC_REAL, BAT_REQ_ASOC,
    BAT_REQ_CURRENT, BAT_REQ_MODULE_VOLTAGE, BAT_REQ_TERMINAL_VOLTAGE,
    BAT_REQ_MAX_BAT_VOLTAGE, BAT_REQ_EOD_VOLTAGE,
    BAT_REQ_FCC, BAT_REQ_RC, BAT_REQ_DESIGN_CAPACITY, BAT_REQ_USABLE_CAPACITY,
    BAT_REQ_USABLE_REMAINING_CAPACITY,
    BAT_REQ_MAX_CHARGE_CURRENT, BAT_REQ_MAX_DISCHARGE_CURRENT,
    BAT_REQ_MAX_DCB_CELL_TEMPERATURE, BAT_REQ_MIN_DCB_CELL_TEMPERATURE,
    BAT_REQ_STATUS_CODE, BAT_REQ_ERROR_CODE,
    BAT_REQ_CHARGE_CYCLES, BAT_REQ_TOTAL_USE_TIME, BAT_REQ_TOTAL_DISCHARGE_TIME,
    BAT_REQ_DCB_COUNT,
    BAT_REQ_READY_FOR_SHUTDOWN, BAT_REQ_TRAINING_MODE,
)

# --- BAT: DCB cell data and info ---
BAT_REQ_DCB_ALL_CELL_TEMPERATURES = RscpTag.BAT_REQ_DCB_ALL_CELL_TEMPERATURES.value
BAT_REQ_DCB_ALL_CELL_VOLTAGES = RscpTag.BAT_REQ_DCB_ALL_CELL_VOLTAGES.value
BAT_REQ_DCB_INFO = RscpTag.BAT_REQ_DCB_INFO.value
BAT_DCB_CELL_TEMPERATURE = RscpTag.BAT_DCB_CELL_TEMPERATURE.value
BAT_DCB_CELL_VOLTAGE = RscpTag.BAT_DCB_CELL_VOLTAGE.value

BAT_DCB_NR_SENSOR = RscpTag.BAT_DCB_NR_SENSOR.value
BAT_DCB_NR_SERIES_CELL = RscpTag.BAT_DCB_NR_SERIES_CELL.value
BAT_DCB_NR_PARALLEL_CELL = RscpTag.BAT_DCB_NR_PARALLEL_CELL.value
BAT_DCB_CURRENT = RscpTag.BAT_DCB_CURRENT.value
BAT_DCB_CURRENT_AVG_30S = RscpTag.BAT_DCB_CURRENT_AVG_30S.value
BAT_DCB_VOLTAGE = RscpTag.BAT_DCB_VOLTAGE.value
BAT_DCB_VOLTAGE_AVG_30S = RscpTag.BAT_DCB_VOLTAGE_AVG_30S.value
BAT_DCB_SOC = RscpTag.BAT_DCB_SOC.value
BAT_DCB_SOH = RscpTag.BAT_DCB_SOH.value
BAT_DCB_CYCLE_COUNT = RscpTag.BAT_DCB_CYCLE_COUNT.value
BAT_DCB_DESIGN_CAPACITY = RscpTag.BAT_DCB_DESIGN_CAPACITY.value
BAT_DCB_DESIGN_VOLTAGE = RscpTag.BAT_DCB_DESIGN_VOLTAGE.value
BAT_DCB_FULL_CHARGE_CAPACITY = RscpTag.BAT_DCB_FULL_CHARGE_CAPACITY.value
BAT_DCB_REMAINING_CAPACITY = RscpTag.BAT_DCB_REMAINING_CAPACITY.value
BAT_DCB_MAX_CHARGE_VOLTAGE = RscpTag.BAT_DCB_MAX_CHARGE_VOLTAGE.value
BAT_DCB_MAX_CHARGE_CURRENT = RscpTag.BAT_DCB_MAX_CHARGE_CURRENT.value
BAT_DCB_MAX_DISCHARGE_CURRENT = RscpTag.BAT_DCB_MAX_DISCHARGE_CURRENT.value
BAT_DCB_END_OF_DISCHARGE = RscpTag.BAT_DCB_END_OF_DISCHARGE.value
BAT_DCB_CHARGE_HIGH_TEMPERATURE = RscpTag.BAT_DCB_CHARGE_HIGH_TEMPERATURE.value
BAT_DCB_CHARGE_LOW_TEMPERATURE = RscpTag.BAT_DCB_CHARGE_LOW_TEMPERATURE.value
BAT_DCB_DEVICE_NAME = RscpTag.BAT_DCB_DEVICE_NAME.value
BAT_DCB_MANUFACTURE_NAME = RscpTag.BAT_DCB_MANUFACTURE_NAME.value
BAT_DCB_MANUFACTURE_DATE = RscpTag.BAT_DCB_MANUFACTURE_DATE.value
BAT_DCB_SERIALCODE = RscpTag.BAT_DCB_SERIALCODE.value
BAT_DCB_SERIALNO = RscpTag.BAT_DCB_SERIALNO.value
BAT_DCB_FW_VERSION = RscpTag.BAT_DCB_FW_VERSION.value
BAT_DCB_PCB_VERSION = RscpTag.BAT_DCB_PCB_VERSION.value
BAT_DCB_PROTOCOL_VERSION = RscpTag.BAT_DCB_PROTOCOL_VERSION.value
BAT_DCB_ERROR = RscpTag.BAT_DCB_ERROR.value
BAT_DCB_WARNING = RscpTag.BAT_DCB_WARNING.value
BAT_DCB_STATUS = RscpTag.BAT_DCB_STATUS.value

# --- DB: history sums ---
DB_REQ_HISTORY_DATA_DAY = RscpTag.DB_REQ_HISTORY_DATA_DAY.value
DB_REQ_HISTORY_TIME_START = RscpTag.DB_REQ_HISTORY_TIME_START.value
DB_REQ_HISTORY_TIME_INTERVAL = RscpTag.DB_REQ_HISTORY_TIME_INTERVAL.value
DB_REQ_HISTORY_TIME_SPAN = RscpTag.DB_REQ_HISTORY_TIME_SPAN.value
DB_SUM_CONTAINER = RscpTag.DB_SUM_CONTAINER.value
DB_AUTARKY = RscpTag.DB_AUTARKY.value
DB_CONSUMED_PRODUCTION = RscpTag.DB_CONSUMED_PRODUCTION.value
DB_DC_POWER = RscpTag.DB_DC_POWER.value
DB_CONSUMPTION = RscpTag.DB_CONSUMPTION.value
DB_BAT_POWER_IN = RscpTag.DB_BAT_POWER_IN.value
DB_BAT_POWER_OUT = RscpTag.DB_BAT_POWER_OUT.value
DB_GRID_POWER_IN = RscpTag.DB_GRID_POWER_IN.value
DB_GRID_POWER_OUT = RscpTag.DB_GRID_POWER_OUT.value
DB_BAT_CHARGE_LEVEL = RscpTag.DB_BAT_CHARGE_LEVEL.value

# --- Model identification ---
# Order matters: the first matching serial prefix wins.
E3DC_MODEL_PREFIXES = (
    (("4", "72"), "S10E"),
    (("74",), "S10E_Compact"),
    (("5",), "S10_Mini"),
    (("6",), "Quattroporte"),
    (("70",), "S10E_Pro"),
    (("75",), "S10E_Pro_Compact"),
    (("8",), "S10X"),
)
UNKNOWN_MODEL = "N/A"
SERIAL_PREFIX_LENGTH = 4

# --- Cell data ---
MIN_VALID_CELL_TEMP_C = 10.0
