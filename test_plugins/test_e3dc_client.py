#!/usr/bin/env python3
"""
Test suite for the E3DC snapshot client.

This test file validates:
- Serial prefix handling and the model table
- Cell temperature/voltage reconciliation
- Daily statistics window selection
- Startup battery discovery and the requests it sends
- Status, system info, battery/DCB and daily statistics snapshots
- All-or-nothing behaviour when a field is missing

Usage:
    python test_plugins/test_e3dc_client.py
"""

import sys
import os
import unittest
from datetime import datetime, timedelta, timezone

# Add the project root to the Python path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.errors import MissingValueError, QueryFailure, TagNotFoundError, TypeMismatchError
from plugins.e3dc.e3dc_client import (
    E3dcClient,
    effective_series_cell_count,
    identify_model,
    reconcile_cell_temperatures,
    reconcile_cell_voltages,
    select_daily_window,
    strip_serial_prefix,
)
from plugins.e3dc.e3dc_plugin_constants import *
from plugins.e3dc.rscp_values import DynamicValue, TaggedItem, ValueKind
from test_plugins.fake_e3dc import FIXED_TIMESTAMP, FakeE3dcProvider


class TestDerivedFields(unittest.TestCase):
    """Pure policies used while assembling snapshots."""

    def test_strip_serial_prefix(self):
        self.assertEqual(strip_serial_prefix("S10-721234567"), "721234567")
        self.assertEqual(strip_serial_prefix("1234"), "1234")
        self.assertEqual(strip_serial_prefix("12345"), "5")

    def test_model_table(self):
        self.assertEqual(identify_model("720001"), "S10E")
        self.assertEqual(identify_model("400001"), "S10E")
        self.assertEqual(identify_model("740001"), "S10E_Compact")
        self.assertEqual(identify_model("500001"), "S10_Mini")
        self.assertEqual(identify_model("600001"), "Quattroporte")
        self.assertEqual(identify_model("700001"), "S10E_Pro")
        self.assertEqual(identify_model("750001"), "S10E_Pro_Compact")
        self.assertEqual(identify_model("800001"), "S10X")
        self.assertEqual(identify_model("900001"), "N/A")
        self.assertEqual(identify_model(""), "N/A")

    def test_temperatures_with_sensor_count(self):
        self.assertEqual(reconcile_cell_temperatures([12.0, 0.0, 13.5, 9.9, 0.0], 3), [12.0, 0.0, 13.5])

    def test_temperatures_without_sensor_count(self):
        self.assertEqual(reconcile_cell_temperatures([12.0, 0.0, 13.5, 9.9, 0.0], 0), [12.0, 13.5])

    def test_voltages(self):
        self.assertEqual(reconcile_cell_voltages([3.2, 3.3, 0.0], 2), [3.2, 3.3])
        self.assertEqual(reconcile_cell_voltages([3.2, 3.3, 0.0], 0), [3.2, 3.3, 0.0])
        self.assertEqual(effective_series_cell_count(0, [3.2, 3.3, 0.0]), 3)
        self.assertEqual(effective_series_cell_count(16, [3.2]), 16)


class TestDailyWindow(unittest.TestCase):
    """Selection of the daily history window."""

    def test_just_after_midnight_uses_yesterdays_last_hour(self):
        now = datetime(2024, 6, 2, 0, 2, 0, tzinfo=timezone.utc)
        start, span = select_daily_window(now, timedelta(seconds=300))
        self.assertEqual(start, datetime(2024, 6, 1, 23, 0, 0, tzinfo=timezone.utc))
        self.assertEqual(span, timedelta(hours=1))

    def test_later_in_the_day_uses_today_so_far(self):
        now = datetime(2024, 6, 2, 0, 10, 0, 900000, tzinfo=timezone.utc)
        start, span = select_daily_window(now, timedelta(seconds=300))
        self.assertEqual(start, datetime(2024, 6, 2, 0, 0, 0, tzinfo=timezone.utc))
        self.assertEqual(span, timedelta(seconds=600))

    def test_elapsed_equal_to_interval_uses_today(self):
        now = datetime(2024, 6, 2, 0, 5, 0, tzinfo=timezone.utc)
        start, span = select_daily_window(now, timedelta(seconds=300))
        self.assertEqual(start.day, 2)
        self.assertEqual(span, timedelta(seconds=300))

    def test_non_utc_input_is_normalized(self):
        berlin_summer = timezone(timedelta(hours=2))
        now = datetime(2024, 6, 2, 12, 0, 0, tzinfo=berlin_summer)
        start, span = select_daily_window(now, timedelta(seconds=300))
        self.assertEqual(start, datetime(2024, 6, 2, 0, 0, 0, tzinfo=timezone.utc))
        self.assertEqual(span, timedelta(hours=10))


class TestE3dcClient(unittest.TestCase):
    """Snapshot assembly against an in-memory device."""

    def setUp(self):
        self.provider = FakeE3dcProvider(battery_count=2, dcb_count=1)
        self.client = E3dcClient(self.provider)

    def test_startup_connects_and_discovers(self):
        self.assertEqual(self.provider.connect_calls, 1)
        # discovery + one DCB count per battery + static info
        self.assertEqual(len(self.provider.requests), 4)
        self.assertEqual([b.index for b in self.client.batteries], [0, 1])
        self.assertEqual(self.client.batteries[1].device_name, "BAT1")
        self.assertEqual(self.client.batteries[0].dcb_count, 1)

    def test_dcb_count_request_shape(self):
        request = self.provider.requests[1][0]
        self.assertEqual(request.tag, BAT_REQ_DATA)
        index_item, count_item = request.value.children
        self.assertEqual(index_item.tag, BAT_INDEX)
        self.assertEqual(index_item.value.kind, ValueKind.UNSIGNED_INT)
        self.assertEqual(index_item.value.width, 16)
        self.assertEqual(index_item.value.data, 0)
        self.assertEqual(count_item, TaggedItem(BAT_REQ_DCB_COUNT))

    def test_device_id(self):
        self.assertEqual(self.client.info.serial_number, "721234567")
        self.assertEqual(self.client.info.model, "S10E")
        self.assertEqual(self.client.device_id, "S10E-721234567")

    def test_already_connected_provider_is_not_reconnected(self):
        provider = FakeE3dcProvider()
        provider.connect()
        E3dcClient(provider)
        self.assertEqual(provider.connect_calls, 1)

    def test_status(self):
        status = self.client.get_status()
        self.assertEqual(status.time_stamp, FIXED_TIMESTAMP)
        self.assertEqual(status.power_pv, 4000.0)
        self.assertEqual(status.power_battery, -1500.0)
        self.assertEqual(status.power_add, -300.0)
        self.assertEqual(status.battery_soc, 80.0)
        self.assertEqual(status.autarky, 92.25)
        self.assertEqual(len(self.provider.requests[-1]), len(STATUS_REQUEST_TAGS))

    def test_status_with_missing_tag_raises(self):
        del self.provider.scalars[EMS_REQ_AUTARKY]
        with self.assertRaises(MissingValueError):
            self.client.get_status()

    def test_status_with_wrong_type_raises(self):
        self.provider.scalars[EMS_REQ_POWER_PV] = DynamicValue.text("lots")
        with self.assertRaises(TypeMismatchError):
            self.client.get_status()

    def test_query_failure_propagates(self):
        self.provider.fail_next = True
        with self.assertRaises(QueryFailure):
            self.client.get_status()

    def test_system_info(self):
        info = self.client.get_system_info()
        self.assertEqual(info.software_release, "S10_2024_04")
        self.assertEqual(info.ip_address, "192.0.2.10")
        self.assertEqual(info.installed_battery_capacity, 13800)
        self.assertEqual(info.max_battery_discharge_power, 9000)
        self.assertIsNone(info.max_ac_power)
        self.assertIsNone(info.max_battery_charge_power)
        self.assertEqual(info.max_charge_power, 4500)
        self.assertTrue(info.power_limits_used)
        self.assertEqual(info.weather_forecast_mode, 1)
        self.assertEqual(info.derate_power, 7000)
        self.assertFalse(info.external_source_available)

    def test_battery_data(self):
        batteries = self.client.get_battery_data()
        self.assertEqual([b.index for b in batteries], [0, 1])
        battery = batteries[0]
        self.assertEqual(battery.asoc, 95.0)
        self.assertEqual(battery.charge_cycles, 321.0)
        self.assertEqual(battery.total_use_time, 1000)
        self.assertFalse(battery.ready_for_shutdown)
        self.assertEqual(len(battery.dcbs), 1)

        dcb = battery.dcbs[0]
        self.assertEqual(dcb.index, 0)
        self.assertEqual(dcb.cell_temperatures, [12.0, 0.0, 13.5])
        self.assertEqual(dcb.cell_voltages, [3.25, 3.5])
        self.assertEqual(dcb.series_cell_count, 2)
        self.assertEqual(dcb.sensor_count, 3)
        self.assertEqual(dcb.device_name, "DCB")

    def test_dcb_without_counts_falls_back(self):
        self.provider.dcb_info[BAT_DCB_NR_SENSOR] = DynamicValue.unsigned(0, 8)
        self.provider.dcb_info[BAT_DCB_NR_SERIES_CELL] = DynamicValue.unsigned(0, 8)
        self.provider.dcb_info[BAT_DCB_NR_PARALLEL_CELL] = DynamicValue.unsigned(0, 8)
        dcb = self.client.get_dcb_data(0, 0)
        self.assertEqual(dcb.cell_temperatures, [12.0, 13.5])
        self.assertEqual(dcb.cell_voltages, [3.25, 3.5, 0.0, 0.0])
        self.assertEqual(dcb.series_cell_count, 4)
        self.assertEqual(dcb.parallel_cell_count, 0)

    def test_dcb_request_shape(self):
        self.client.get_dcb_data(1, 0)
        request = self.provider.requests[-1][0]
        self.assertEqual(request.tag, BAT_REQ_DATA)
        tags = [child.tag for child in request.value.children]
        self.assertEqual(tags, [BAT_INDEX, BAT_REQ_DCB_ALL_CELL_TEMPERATURES,
                                BAT_REQ_DCB_ALL_CELL_VOLTAGES, BAT_REQ_DCB_INFO])
        self.assertEqual(request.value.children[0].value.data, 1)
        for child in request.value.children[1:]:
            self.assertEqual(child.value, DynamicValue.unsigned(0, 16))

    def test_dcb_count_is_cached_from_startup(self):
        self.provider.dcb_counts[0] = 3
        battery = self.client.get_battery_data()[0]
        self.assertEqual(battery.dcb_count, 1)
        self.assertEqual(len(battery.dcbs), 1)

    def test_missing_cell_value_fails_whole_snapshot(self):
        original_answer = self.provider._battery_answer

        def answer_with_empty_cell(children):
            response = original_answer(children)
            patched = []
            for item in response.value.children:
                if item.tag == response_tag(BAT_REQ_DCB_ALL_CELL_VOLTAGES):
                    cells = [TaggedItem(BAT_DCB_CELL_VOLTAGE)]
                    item = TaggedItem(item.tag, DynamicValue.container(
                        [TaggedItem(BAT_DATA, DynamicValue.container(cells))]))
                patched.append(item)
            return TaggedItem(response.tag, DynamicValue.container(patched))

        self.provider._battery_answer = answer_with_empty_cell
        with self.assertRaises(MissingValueError):
            self.client.get_battery_data()

    def test_missing_battery_field_fails_whole_snapshot(self):
        del self.provider.battery_values[BAT_REQ_RSOC]
        with self.assertRaises(MissingValueError):
            self.client.get_battery_data()

    def test_daily_statistics_today(self):
        now = datetime(2024, 6, 1, 10, 0, 0, tzinfo=timezone.utc)
        stats = self.client.get_daily_statistics(timedelta(seconds=300), now=now)
        self.assertEqual(stats.start, datetime(2024, 6, 1, 0, 0, 0, tzinfo=timezone.utc))
        self.assertEqual(stats.timespan, timedelta(hours=10))
        self.assertEqual(stats.autarky, 85.25)
        self.assertEqual(stats.grid_power_in, 4000.0)
        self.assertEqual(stats.state_of_charge, 55.5)

        request = self.provider.requests[-1][0]
        self.assertEqual(request.tag, DB_REQ_HISTORY_DATA_DAY)
        start_item, interval_item, span_item = request.value.children
        self.assertEqual(start_item.tag, DB_REQ_HISTORY_TIME_START)
        self.assertEqual(start_item.value, DynamicValue.unsigned(1717200000, 64))
        self.assertEqual(interval_item.value, DynamicValue.unsigned(36000, 64))
        self.assertEqual(span_item.value, DynamicValue.unsigned(36000, 64))

    def test_daily_statistics_after_midnight(self):
        now = datetime(2024, 6, 1, 0, 2, 0, tzinfo=timezone.utc)
        stats = self.client.get_daily_statistics(timedelta(seconds=300), now=now)
        self.assertEqual(stats.start, datetime(2024, 5, 31, 23, 0, 0, tzinfo=timezone.utc))
        self.assertEqual(stats.timespan, timedelta(hours=1))

    def test_db_data_rejects_negative_window(self):
        with self.assertRaises(QueryFailure):
            self.client.get_db_data_timestamp(datetime(2024, 6, 1, tzinfo=timezone.utc), timedelta(seconds=-1))

    def test_missing_sum_container_raises(self):
        self.provider.sums.clear()
        with self.assertRaises(TagNotFoundError):
            self.client.get_daily_statistics(timedelta(seconds=300))


if __name__ == '__main__':
    unittest.main(verbosity=2)
