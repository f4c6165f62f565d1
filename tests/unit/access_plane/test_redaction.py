"""Tests for payload redaction applied to public share reads."""

from __future__ import annotations

from access_plane.app.share_tokens.model import DisclosureFlags
from access_plane.app.share_tokens.redaction import hidden_fields, redact_payload

PAYLOAD = {
    'title': 'Selections',
    'boards': [
        {
            'id': 'b1',
            'name': 'Tile',
            'photos': ['tile.jpg'],
            'items': [{'name': 'Subway', 'notes': 'order 10% extra', 'source_url': 'https://x'}],
        },
        {'id': 'b2', 'name': 'Paint', 'comments': [{'body': 'too dark'}]},
    ],
    'items': [
        {'title': 'Fix outlet', 'location': 'Kitchen', 'status': 'open', 'notes': 'n1'},
        {'title': 'Patch wall', 'location': 'Hall', 'status': 'done'},
    ],
}


def test_default_flags_hide_everything_optional():
    assert hidden_fields(DisclosureFlags()) >= {'photos', 'notes', 'comments', 'source_url'}
    result = redact_payload(PAYLOAD, DisclosureFlags())

    tile = result['boards'][0]
    assert 'photos' not in tile
    assert tile['items'][0] == {'name': 'Subway'}
    assert 'comments' not in result['boards'][1]
    assert 'notes' not in result['items'][0]


def test_enabled_flags_keep_fields():
    flags = DisclosureFlags(include_photos=True, include_notes=True)
    result = redact_payload(PAYLOAD, flags)
    tile = result['boards'][0]
    assert tile['photos'] == ['tile.jpg']
    assert tile['items'][0]['notes'] == 'order 10% extra'
    assert 'source_url' not in tile['items'][0]


def test_does_not_mutate_source():
    redact_payload(PAYLOAD, DisclosureFlags())
    assert PAYLOAD['boards'][0]['photos'] == ['tile.jpg']


def test_scope_selects_one_board():
    result = redact_payload(PAYLOAD, DisclosureFlags(), scope_id='b2')
    assert [b['id'] for b in result['boards']] == ['b2']


def test_missing_scope_is_empty():
    assert redact_payload(PAYLOAD, DisclosureFlags(), scope_id='b9') is None
    assert redact_payload({'items': []}, DisclosureFlags(), scope_id='b1') is None


def test_filters_narrow_items():
    result = redact_payload(
        PAYLOAD, DisclosureFlags(), filters={'locations': ['Kitchen'], 'statuses': ['open']},
    )
    assert [i['title'] for i in result['items']] == ['Fix outlet']


def test_empty_payload():
    assert redact_payload(None, DisclosureFlags()) is None
    assert redact_payload({}, DisclosureFlags()) is None
