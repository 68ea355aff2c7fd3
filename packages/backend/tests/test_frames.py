"""SSE frame encoding and entity-filter parsing."""

import pytest

from atelier.events.types import EntityKind
from atelier.realtime.data_events import UnknownEntityError, parse_entities
from atelier.realtime.frames import ServerSentEvent, heartbeat_frame, parse_frames


def test_encode_frame():
    frame = ServerSentEvent(event="data-change", data='{"a":1}')
    assert frame.encode() == 'event: data-change\ndata: {"a":1}\n\n'


def test_encode_frame_with_id_and_multiline_data():
    frame = ServerSentEvent(event="note", data="line one\nline two", id="7")
    assert frame.encode() == "id: 7\nevent: note\ndata: line one\ndata: line two\n\n"


def test_parse_frames_reads_encoded_body():
    body = (
        ServerSentEvent(event="data-change", data='{"entityId":"a1"}').encode()
        + heartbeat_frame().encode()
    )
    frames = parse_frames(body)
    assert [f.event for f in frames] == ["data-change", "heartbeat"]
    assert frames[0].payload() == {"entityId": "a1"}
    assert frames[1].payload()["type"] == "heartbeat"


@pytest.mark.parametrize("raw", [None, "", " , ,"])
def test_parse_entities_blank_means_all(raw):
    assert parse_entities(raw) is None


def test_parse_entities():
    assert parse_entities("attendance, invoice,medicalCertificate") == frozenset(
        {EntityKind.ATTENDANCE, EntityKind.INVOICE, EntityKind.MEDICAL_CERTIFICATE}
    )


def test_parse_entities_rejects_unknown_kinds():
    with pytest.raises(UnknownEntityError) as exc:
        parse_entities("attendance,rental,Invoice")
    assert exc.value.names == ["rental", "Invoice"]
    assert "rental" in str(exc.value)
