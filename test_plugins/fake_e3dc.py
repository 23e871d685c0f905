#!/usr/bin/env python3
"""
In-memory E3DC device for tests.

`FakeE3dcProvider` implements `ProtocolProvider` and answers request trees the
way the storage system does: scalar requests come back under their response
tag, `BAT_REQ_DATA` containers come back as `BAT_DATA` containers, and the
history request returns a sum container. Every `send()` call is recorded in
`requests` so tests can check what was asked for.
"""

import logging
import os
import sys
from datetime import datetime, timezone
from typing import Dict, List, Sequence

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.errors import QueryFailure
from plugins.plugin_interface import ProtocolProvider, Response
from plugins.e3dc.rscp_values import DynamicValue, TaggedItem
from plugins.e3dc.e3dc_plugin_constants import *

FIXED_TIMESTAMP = datetime(2024, 6, 1, 12, 0, 0, tzinfo=timezone.utc)


def _scalar(request_tag: int, value: DynamicValue) -> TaggedItem:
    return TaggedItem(response_tag(request_tag), value)


def _container(tag: int, items: List[TaggedItem]) -> TaggedItem:
    return TaggedItem(tag, DynamicValue.container(items))


def default_dcb_info() -> Dict[int, DynamicValue]:
    return {
        BAT_DCB_NR_SENSOR: DynamicValue.unsigned(3, 8),
        BAT_DCB_NR_SERIES_CELL: DynamicValue.unsigned(2, 8),
        BAT_DCB_NR_PARALLEL_CELL: DynamicValue.unsigned(1, 8),
        BAT_DCB_CURRENT: DynamicValue.float32(-1.25),
        BAT_DCB_CURRENT_AVG_30S: DynamicValue.float32(-1.5),
        BAT_DCB_VOLTAGE: DynamicValue.float32(52.5),
        BAT_DCB_VOLTAGE_AVG_30S: DynamicValue.float32(52.25),
        BAT_DCB_SOC: DynamicValue.float32(80.5),
        BAT_DCB_SOH: DynamicValue.float32(97.0),
        BAT_DCB_CYCLE_COUNT: DynamicValue.unsigned(321),
        BAT_DCB_DESIGN_CAPACITY: DynamicValue.float32(64.0),
        BAT_DCB_DESIGN_VOLTAGE: DynamicValue.float32(51.2),
        BAT_DCB_FULL_CHARGE_CAPACITY: DynamicValue.float32(62.0),
        BAT_DCB_REMAINING_CAPACITY: DynamicValue.float32(50.0),
        BAT_DCB_MAX_CHARGE_VOLTAGE: DynamicValue.float32(56.0),
        BAT_DCB_MAX_CHARGE_CURRENT: DynamicValue.float32(30.0),
        BAT_DCB_MAX_DISCHARGE_CURRENT: DynamicValue.float32(30.0),
        BAT_DCB_END_OF_DISCHARGE: DynamicValue.float32(44.0),
        BAT_DCB_CHARGE_HIGH_TEMPERATURE: DynamicValue.float32(45.0),
        BAT_DCB_CHARGE_LOW_TEMPERATURE: DynamicValue.float32(0.0),
        BAT_DCB_DEVICE_NAME: DynamicValue.text("DCB"),
        BAT_DCB_MANUFACTURE_NAME: DynamicValue.text("E3DC"),
        BAT_DCB_MANUFACTURE_DATE: DynamicValue.unsigned(20200101),
        BAT_DCB_SERIALCODE: DynamicValue.text("SC-1"),
        BAT_DCB_SERIALNO: DynamicValue.unsigned(4711),
        BAT_DCB_FW_VERSION: DynamicValue.unsigned(5),
        BAT_DCB_PCB_VERSION: DynamicValue.unsigned(2),
        BAT_DCB_PROTOCOL_VERSION: DynamicValue.unsigned(1),
        BAT_DCB_ERROR: DynamicValue.unsigned(0),
        BAT_DCB_WARNING: DynamicValue.unsigned(0),
        BAT_DCB_STATUS: DynamicValue.unsigned(0),
    }


def default_battery_values() -> Dict[int, DynamicValue]:
    values = {tag: DynamicValue.float32(1.0) for tag in BATTERY_DATA_REQUEST_TAGS}
    values.update({
        BAT_REQ_RSOC: DynamicValue.float32(80.5),
        BAT_REQ_ASOC: DynamicValue.float32(95.0),
        BAT_REQ_CURRENT: DynamicValue.float32(-2.5),
        BAT_REQ_CHARGE_CYCLES: DynamicValue.unsigned(321),
        BAT_REQ_TOTAL_USE_TIME: DynamicValue.unsigned(1000),
        BAT_REQ_TOTAL_DISCHARGE_TIME: DynamicValue.unsigned(500),
        BAT_REQ_READY_FOR_SHUTDOWN: DynamicValue.boolean(False),
        BAT_REQ_TRAINING_MODE: DynamicValue.boolean(False),
    })
    return values


class FakeE3dcProvider(ProtocolProvider):
    """
    Answers RSCP requests from editable dictionaries.

    Attributes tests typically tweak:
        scalars: response items for top-level scalar requests, by request tag.
        batteries: battery identity containers returned by discovery.
        dcb_counts: DCB count per battery index.
        battery_values: per-battery telemetry, by request tag.
        dcb_info / cell_temperatures / cell_voltages: DCB answers.
        sums: daily history sums, by DB tag.
    """

    def __init__(self, battery_count: int = 1, dcb_count: int = 1):
        super().__init__("192.0.2.10", logging.getLogger("FakeE3dcProvider"))
        self.requests: List[Sequence[TaggedItem]] = []
        self.timestamp = FIXED_TIMESTAMP
        self.connect_calls = 0
        self.fail_next = False

        self.scalars: Dict[int, DynamicValue] = {
            EMS_REQ_DERATE_AT_PERCENT_VALUE: DynamicValue.float32(0.7),
            EMS_REQ_DERATE_AT_POWER_VALUE: DynamicValue.unsigned(7000),
            EMS_REQ_INSTALLED_PEAK_POWER: DynamicValue.unsigned(10000),
            EMS_REQ_EXT_SRC_AVAILABLE: DynamicValue.boolean(False),
            INFO_REQ_SERIAL_NUMBER: DynamicValue.text("S10-721234567"),
            INFO_REQ_MAC_ADDRESS: DynamicValue.text("00:11:22:33:44:55"),
            INFO_REQ_SW_RELEASE: DynamicValue.text("S10_2024_04"),
            INFO_REQ_IP_ADDRESS: DynamicValue.text("192.0.2.10"),
            EMS_REQ_POWER_PV: DynamicValue.signed(4000),
            EMS_REQ_POWER_BAT: DynamicValue.signed(-1500),
            EMS_REQ_POWER_GRID: DynamicValue.signed(200),
            EMS_REQ_POWER_HOME: DynamicValue.signed(2700),
            EMS_REQ_POWER_WB_ALL: DynamicValue.signed(0),
            EMS_REQ_POWER_ADD: DynamicValue.signed(-300),
            EMS_REQ_BAT_SOC: DynamicValue.unsigned(80, 8),
            EMS_REQ_AUTARKY: DynamicValue.float32(92.25),
            EMS_REQ_SELF_CONSUMPTION: DynamicValue.float32(100.0),
        }
        self.power_settings: Dict[int, DynamicValue] = {
            EMS_MAX_CHARGE_POWER: DynamicValue.unsigned(4500),
            EMS_MAX_DISCHARGE_POWER: DynamicValue.unsigned(4500),
            EMS_DISCHARGE_START_POWER: DynamicValue.unsigned(65),
            EMS_POWER_LIMITS_USED: DynamicValue.boolean(True),
            EMS_POWERSAVE_ENABLED: DynamicValue.boolean(True),
            EMS_WEATHER_FORECAST_MODE: DynamicValue.signed(1),
            EMS_WEATHER_REGULATED_CHARGE_ENABLED: DynamicValue.boolean(False),
        }
        self.sys_specs: List[TaggedItem] = [
            self.sys_spec(SYS_SPEC_INSTALLED_BATTERY_CAPACITY, DynamicValue.signed(13800)),
            self.sys_spec(SYS_SPEC_MAX_BAT_DISCHARGE_POWER, DynamicValue.signed(9000)),
            self.sys_spec("hardwareVersion", DynamicValue.text("rev-b")),
            _container(EMS_SYS_SPEC, [TaggedItem(EMS_SYS_SPEC_NAME, DynamicValue.text("maxAcPower")),
                                      TaggedItem(EMS_SYS_SPEC_VALUE_INT)]),
        ]
        self.batteries: List[TaggedItem] = [self.battery_spec(i) for i in range(battery_count)]
        self.dcb_counts: Dict[int, int] = {i: dcb_count for i in range(battery_count)}
        self.battery_values = default_battery_values()
        self.dcb_info = default_dcb_info()
        self.cell_temperatures: List[float] = [12.0, 0.0, 13.5, 9.9, 0.0]
        self.cell_voltages: List[float] = [3.25, 3.5, 0.0, 0.0]
        self.sums: Dict[int, DynamicValue] = {
            DB_AUTARKY: DynamicValue.float32(85.25),
            DB_CONSUMED_PRODUCTION: DynamicValue.float32(60.75),
            DB_DC_POWER: DynamicValue.float32(12000.0),
            DB_CONSUMPTION: DynamicValue.float32(9000.0),
            DB_BAT_POWER_IN: DynamicValue.float32(3000.0),
            DB_BAT_POWER_OUT: DynamicValue.float32(2500.0),
            DB_GRID_POWER_IN: DynamicValue.float32(4000.0),
            DB_GRID_POWER_OUT: DynamicValue.float32(1200.0),
            DB_BAT_CHARGE_LEVEL: DynamicValue.float32(55.5),
        }

    @staticmethod
    def sys_spec(name: str, value: DynamicValue) -> TaggedItem:
        return _container(EMS_SYS_SPEC, [
            TaggedItem(EMS_SYS_SPEC_NAME, DynamicValue.text(name)),
            TaggedItem(EMS_SYS_SPEC_VALUE_INT, value),
        ])

    @staticmethod
    def battery_spec(index: int) -> TaggedItem:
        return _container(BAT_DATA, [
            TaggedItem(BAT_INDEX, DynamicValue.unsigned(index, 16)),
            TaggedItem(BAT_DEVICE_NAME, DynamicValue.text(f"BAT{index}")),
            TaggedItem(BAT_PARAM_BAT_NUMBER, DynamicValue.unsigned(index, 8)),
            TaggedItem(BAT_MANUFACTURER_NAME, DynamicValue.text("E3DC")),
            TaggedItem(BAT_SERIALNO, DynamicValue.unsigned(1000 + index)),
            TaggedItem(BAT_INSTANCE_DESCRIPTOR, DynamicValue.text(f"battery-{index}")),
        ])

    @property
    def name(self) -> str:
        return "fake"

    def connect(self) -> None:
        self.connect_calls += 1
        self._is_connected_flag = True

    def disconnect(self) -> None:
        self._is_connected_flag = False

    def send(self, items: Sequence[TaggedItem]) -> Response:
        self.requests.append(list(items))
        if self.fail_next:
            self.fail_next = False
            raise QueryFailure("simulated round trip failure")
        return Response(items=[self._answer(item) for item in items], timestamp=self.timestamp)

    # --- answers ---

    def _answer(self, item: TaggedItem) -> TaggedItem:
        if item.tag == BAT_REQ_AVAILABLE_BATTERIES:
            return _container(response_tag(item.tag), list(self.batteries))
        if item.tag == BAT_REQ_DATA:
            return self._battery_answer(item.value.children)
        if item.tag == DB_REQ_HISTORY_DATA_DAY:
            sums = [TaggedItem(tag, value) for tag, value in self.sums.items()]
            return _container(response_tag(item.tag), [_container(DB_SUM_CONTAINER, sums)])
        if item.tag == EMS_REQ_GET_POWER_SETTINGS:
            settings = [TaggedItem(tag, value) for tag, value in self.power_settings.items()]
            return _container(response_tag(item.tag), settings)
        if item.tag == EMS_REQ_GET_SYS_SPECS:
            return _container(response_tag(item.tag), list(self.sys_specs))
        if item.tag in self.scalars:
            return _scalar(item.tag, self.scalars[item.tag])
        # Unknown requests are answered without data, like a device that lacks the feature.
        return TaggedItem(response_tag(item.tag))

    def _battery_answer(self, children: List[TaggedItem]) -> TaggedItem:
        index = children[0].value.data
        answers = [TaggedItem(BAT_INDEX, DynamicValue.unsigned(index, 16))]
        for request in children[1:]:
            tag = request.tag
            if tag == BAT_REQ_DCB_COUNT:
                answers.append(_scalar(tag, DynamicValue.unsigned(self.dcb_counts[index], 8)))
            elif tag == BAT_REQ_DCB_INFO:
                info = [TaggedItem(t, v) for t, v in self.dcb_info.items()]
                answers.append(_container(response_tag(tag), info))
            elif tag == BAT_REQ_DCB_ALL_CELL_TEMPERATURES:
                cells = [TaggedItem(BAT_DCB_CELL_TEMPERATURE, DynamicValue.float32(t)) for t in self.cell_temperatures]
                answers.append(_container(response_tag(tag), [_container(BAT_DATA, cells)]))
            elif tag == BAT_REQ_DCB_ALL_CELL_VOLTAGES:
                cells = [TaggedItem(BAT_DCB_CELL_VOLTAGE, DynamicValue.float32(v)) for v in self.cell_voltages]
                answers.append(_container(response_tag(tag), [_container(BAT_DATA, cells)]))
            elif tag in self.battery_values:
                answers.append(_scalar(tag, self.battery_values[tag]))
            else:
                answers.append(TaggedItem(response_tag(tag)))
        return _container(BAT_DATA, answers)
