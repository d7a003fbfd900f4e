import msgpack
import pytest

from game.messaging.encoder import MAX_FRAME_LEN, DecodeError, decode, encode
from game.messaging.types import ClickRejectedMessage, JoinMessage


class TestEncoder:
    def test_client_message_survives_the_wire(self):
        payload = JoinMessage(match_id="m-1").model_dump()

        assert decode(encode(payload)) == {"type": "join", "match_id": "m-1"}

    def test_enum_values_are_sent_as_plain_strings(self):
        data = encode(ClickRejectedMessage(winner_id="alice").model_dump())

        assert msgpack.unpackb(data, raw=False) == {"type": "click_rejected", "winner_id": "alice"}

    def test_non_map_frame_rejected(self):
        with pytest.raises(DecodeError, match="expected map"):
            decode(msgpack.packb(["join", "m-1"]))

    def test_garbage_rejected(self):
        with pytest.raises(DecodeError, match="failed to decode"):
            decode(b"\xc1\xc1\xc1")

    def test_oversized_frame_rejected_before_unpacking(self):
        with pytest.raises(DecodeError, match="frame too large"):
            decode(b"\x00" * (MAX_FRAME_LEN + 1))

    def test_integer_keys_rejected(self):
        with pytest.raises(DecodeError):
            decode(msgpack.packb({1: "join"}))

    def test_long_string_rejected(self):
        with pytest.raises(DecodeError):
            decode(msgpack.packb({"type": "join", "match_id": "x" * 5000}))
