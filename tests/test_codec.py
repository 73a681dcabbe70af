import json
import unittest

from src.stream.codec import decode_frame
from src.stream.errors import MalformedFrameError
from src.stream.events import (
    Activation,
    Heartbeat,
    MarketData,
    OrderUpdate,
    PnLUpdate,
    Raw,
    Status,
    System,
    Unknown,
)


def frame(payload) -> str:
    return json.dumps(payload)


class DecodeFrameTest(unittest.TestCase):
    def test_market_data_strips_protocol_metadata(self) -> None:
        event = decode_frame(
            frame({"topic": "smd+8314", "conid": 8314, "31": 150.25, "83": 1.5, "seq": 1}), now_ms=1_700_000_000_000
        )

        self.assertIsInstance(event, MarketData)
        assert isinstance(event, MarketData)
        self.assertEqual(8314, event.instrument_id)
        self.assertEqual("smd+8314", event.topic)
        self.assertEqual({"31": 150.25, "83": 1.5}, event.fields)
        self.assertEqual(1_700_000_000_000, event.timestamp_ms)

    def test_market_data_keeps_every_non_metadata_key(self) -> None:
        payload = {"topic": "smd+265598", "conid": 265598, "seq": 9, "_updated": 1712, "6509": "RpB", "84": "171.2"}
        event = decode_frame(frame(payload))

        assert isinstance(event, MarketData)
        self.assertEqual({"_updated": 1712, "6509": "RpB", "84": "171.2"}, event.fields)

    def test_market_data_without_conid_uses_topic_suffix(self) -> None:
        event = decode_frame(frame({"topic": "smd+42", "31": 1.0}))

        assert isinstance(event, MarketData)
        self.assertEqual(42, event.instrument_id)

    def test_order_update_topics(self) -> None:
        for topic in ("sor", "o+12345"):
            event = decode_frame(frame({"topic": topic, "orderId": 12345, "status": "Filled"}))
            self.assertIsInstance(event, OrderUpdate)
            assert isinstance(event, OrderUpdate)
            self.assertEqual(topic, event.topic)
            self.assertEqual(12345, event.raw_data["orderId"])
            self.assertEqual("Filled", event.raw_data["status"])

    def test_pnl_update_reads_first_account(self) -> None:
        event = decode_frame(frame({"topic": "spl", "args": {"DU12345": {"dpl": 250.5, "upl": -125.75}}}))

        self.assertIsInstance(event, PnLUpdate)
        assert isinstance(event, PnLUpdate)
        self.assertEqual(250.5, event.daily_pnl)
        self.assertEqual(-125.75, event.unrealized_pnl)
        self.assertEqual({"dpl": 250.5, "upl": -125.75}, event.raw_account_data)

    def test_pnl_update_uses_insertion_order(self) -> None:
        raw = '{"topic":"spl","args":{"U2":{"dpl":2.0},"U1":{"dpl":1.0}}}'
        event = decode_frame(raw)

        assert isinstance(event, PnLUpdate)
        self.assertEqual(2.0, event.daily_pnl)

    def test_pnl_update_with_empty_or_missing_args_has_no_values(self) -> None:
        for payload in ({"topic": "spl", "args": {}}, {"topic": "spl"}):
            event = decode_frame(frame(payload))
            assert isinstance(event, PnLUpdate)
            self.assertIsNone(event.daily_pnl)
            self.assertIsNone(event.unrealized_pnl)
            self.assertEqual({}, event.raw_account_data)

    def test_activation_pulls_fields_from_args(self) -> None:
        payload = {
            "topic": "act",
            "args": {
                "accounts": ["DU12345", "DU67890"],
                "selectedAccount": "DU12345",
                "acctProps": {"DU12345": {"hasChildAccounts": False}},
                "allowFeatures": {"showGFIS": True},
                "chartPeriods": {"STK": ["1min"]},
                "groups": [],
                "profiles": [],
                "serverInfo": {"serverName": "JifN19053", "serverVersion": "Build 10.25"},
                "sessionId": "abc123",
            },
        }
        event = decode_frame(frame(payload))

        self.assertIsInstance(event, Activation)
        assert isinstance(event, Activation)
        self.assertEqual(["DU12345", "DU67890"], event.accounts)
        self.assertEqual("DU12345", event.selected_account)
        self.assertEqual({"showGFIS": True}, event.allowed_features)
        self.assertEqual({"STK": ["1min"]}, event.chart_periods)
        self.assertEqual("JifN19053", event.server_info["serverName"])
        self.assertEqual("abc123", event.session_id)

    def test_activation_without_args_defaults_to_empty(self) -> None:
        event = decode_frame(frame({"topic": "act", "session": "active"}))

        assert isinstance(event, Activation)
        self.assertEqual([], event.accounts)
        self.assertIsNone(event.selected_account)
        self.assertEqual({}, event.server_info)
        self.assertIsNone(event.session_id)

    def test_status(self) -> None:
        payload = {
            "topic": "sts",
            "args": {
                "authenticated": True,
                "competing": False,
                "connected": True,
                "username": "trader1",
                "message": "",
                "fail": "",
                "serverName": "JifN19053",
                "serverVersion": "Build 10.25",
            },
        }
        event = decode_frame(frame(payload))

        self.assertEqual(
            Status(
                authenticated=True,
                competing=False,
                connected=True,
                username="trader1",
                message="",
                fail="",
                server_name="JifN19053",
                server_version="Build 10.25",
            ),
            event,
        )

    def test_system_reads_top_level_keys(self) -> None:
        event = decode_frame(frame({"topic": "system", "success": "trader1", "isFT": False, "isPaper": True}))

        self.assertEqual(System(is_paper_trading=True, is_financial_trader=False, success="trader1"), event)

    def test_topic_rules_win_over_heartbeat_marker(self) -> None:
        event = decode_frame(frame({"topic": "system", "hb": 1712345678, "isPaper": True}))

        self.assertIsInstance(event, System)

    def test_heartbeat_marker_with_unrecognized_topic(self) -> None:
        event = decode_frame(frame({"topic": "tic", "hb": 1}))

        self.assertEqual(Heartbeat(raw={"topic": "tic", "hb": 1}), event)

    def test_heartbeat_marker_without_topic_is_raw(self) -> None:
        event = decode_frame(frame({"hb": 1}))

        self.assertEqual(Raw(raw={"hb": 1}), event)

    def test_unknown_topic(self) -> None:
        event = decode_frame(frame({"topic": "unknown_topic", "data": "test"}))

        self.assertEqual(Unknown(raw={"topic": "unknown_topic", "data": "test"}), event)

    def test_non_string_topic_is_unknown(self) -> None:
        event = decode_frame(frame({"topic": 7}))

        self.assertIsInstance(event, Unknown)

    def test_frame_without_topic_is_raw(self) -> None:
        self.assertEqual(Raw(raw={"data": "raw_data"}), decode_frame(frame({"data": "raw_data"})))

    def test_non_object_json_is_raw(self) -> None:
        self.assertEqual(Raw(raw=[1, 2]), decode_frame("[1, 2]"))

    def test_bytes_frames_are_decoded(self) -> None:
        event = decode_frame(b'{"topic":"sor","orderId":1}')

        self.assertIsInstance(event, OrderUpdate)

    def test_activation_fields_of_wrong_type_fall_back_to_defaults(self) -> None:
        payload = {
            "topic": "act",
            "args": {
                "accounts": 5,
                "acctProps": [1, 2],
                "allowFeatures": "all",
                "chartPeriods": None,
                "groups": {"g": 1},
                "profiles": "p",
                "serverInfo": ["JifN19053"],
            },
        }
        event = decode_frame(frame(payload))

        self.assertEqual(Activation(), event)

    def test_args_of_wrong_type_are_treated_as_absent(self) -> None:
        self.assertEqual(Status(), decode_frame(frame({"topic": "sts", "args": [True]})))
        self.assertEqual(Activation(), decode_frame(frame({"topic": "act", "args": "x"})))
        self.assertEqual(System(), decode_frame(frame({"topic": "system", "args": 3})))

    def test_market_data_suffix_that_is_not_a_number(self) -> None:
        for topic, expected in (("smd+\u00b2", "\u00b2"), ("smd+AAPL", "AAPL"), ("smd+", None)):
            event = decode_frame(frame({"topic": topic, "31": 1.0}))
            assert isinstance(event, MarketData)
            self.assertEqual(expected, event.instrument_id)

    def test_invalid_json_raises_malformed_frame(self) -> None:
        with self.assertRaises(MalformedFrameError) as ctx:
            decode_frame("invalid json")
        self.assertEqual("invalid json", ctx.exception.raw)

    def test_invalid_utf8_raises_malformed_frame(self) -> None:
        with self.assertRaises(MalformedFrameError):
            decode_frame(b"\xff\xfe{")


if __name__ == "__main__":
    unittest.main()
