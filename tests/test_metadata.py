"""Tests for metadata property resolution and timestamp parsing."""
import pytest
from datetime import datetime, timezone

from librarian.lib.errors import ExtractionError
from librarian.lib.metadata import (
    PropertyCategory,
    clean_gps,
    expand_tags,
    resolve_properties,
    select_candidate,
)
from librarian.lib.timestamp import (
    combine_date_time,
    format_exif_local,
    format_offset_datetime,
    parse_exif_datetime,
    parse_offset,
)


def utc(*args):
    return datetime(*args, tzinfo=timezone.utc)


class TestParseExifDatetime:
    """Tests for parse_exif_datetime()."""

    def test_naive_value_uses_default_zone(self):
        assert parse_exif_datetime('2024:01:15 12:00:00') == utc(2024, 1, 15, 12, 0, 0)
        assert parse_exif_datetime('2024:01:15 12:00:00', default_tz='America/New_York') == utc(2024, 1, 15, 17, 0, 0)

    def test_suffix_is_applied(self):
        assert parse_exif_datetime('2024:01:15 12:00:00+02:00') == utc(2024, 1, 15, 10, 0, 0)

    def test_explicit_offset_overrides_suffix(self):
        assert parse_exif_datetime('2024:01:15 12:00:00+02:00', '-01:00') == utc(2024, 1, 15, 13, 0, 0)

    def test_zero_date_is_absent(self):
        assert parse_exif_datetime('0000:00:00 00:00:00') is None
        assert parse_exif_datetime('0000:00:00 00:00:00+00:00') is None

    def test_malformed_values(self):
        assert parse_exif_datetime('2024-01-15 12:00:00') is None
        assert parse_exif_datetime('2024:13:45 12:00:00') is None
        assert parse_exif_datetime(20240115) is None

    def test_parse_offset(self):
        assert parse_offset('+05:30').utcoffset(None).total_seconds() == 5.5 * 3600
        assert parse_offset('-03:00').utcoffset(None).total_seconds() == -3 * 3600
        assert parse_offset('0530') is None
        assert parse_offset('+25:00') is None


class TestFormatting:
    """Tests for local-time rendering used by the write-back."""

    def test_format_in_zone(self):
        instant = utc(2024, 7, 1, 16, 30, 0)
        assert format_exif_local(instant, 'America/New_York') == '2024:07:01 12:30:00'
        assert format_offset_datetime(instant, 'America/New_York') == '2024-07-01 12:30:00-04:00'

    def test_combine_date_time(self):
        assert combine_date_time('2024-01-15', '09:00:00', 'Asia/Tokyo') == utc(2024, 1, 15, 0, 0, 0)

    def test_combine_date_time_rejects_garbage(self):
        with pytest.raises(ValueError):
            combine_date_time('2024-02-30', '09:00:00', 'UTC')


class TestSelectCandidate:
    """Tests for select_candidate()."""

    def test_priority_order(self):
        bag = {'CreateDate': '2020:01:01 00:00:00', 'DateTimeCreated': '2024:01:15 12:00:00+01:00'}
        assert select_candidate(bag, PropertyCategory.DATETIME) == ('DateTimeCreated', '2024:01:15 12:00:00+01:00')

    def test_offset_required_for_offset_tags(self):
        """DateTimeCreated without a suffix is malformed and skipped."""
        bag = {'DateTimeCreated': '2024:01:15 12:00:00', 'DateTimeOriginal': '2024:01:14 10:00:00'}
        assert select_candidate(bag, PropertyCategory.DATETIME) == ('DateTimeOriginal', '2024:01:14 10:00:00')

    def test_offset_forbidden_for_plain_tags(self):
        bag = {'DateTimeOriginal': '2024:01:15 12:00:00+01:00'}
        assert select_candidate(bag, PropertyCategory.DATETIME) is None

    def test_no_candidates(self):
        assert select_candidate({'Make': 'Canon'}, PropertyCategory.TITLE) is None


class TestResolveProperties:
    """Tests for resolve_properties()."""

    def test_datetime_created_beats_create_date(self):
        for create_date in ('2001:01:01 00:00:00', '2030:12:31 23:59:59'):
            bag = {
                'MIMEType': 'image/jpeg',
                'CreateDate': create_date,
                'DateTimeCreated': '2024:01:15 12:00:00+00:00',
            }
            assert resolve_properties(bag).datetime == utc(2024, 1, 15, 12, 0, 0)

    def test_zero_date_yields_none(self):
        bag = {'MIMEType': 'image/jpeg', 'DateTimeOriginal': '0000:00:00 00:00:00'}
        resolved = resolve_properties(bag)
        assert resolved.datetime is None

    def test_zero_date_falls_through(self):
        bag = {
            'MIMEType': 'image/jpeg',
            'DateTimeOriginal': '0000:00:00 00:00:00',
            'CreateDate': '2024:01:15 08:00:00',
        }
        assert resolve_properties(bag).datetime == utc(2024, 1, 15, 8, 0, 0)

    def test_image_local_time_with_offset_tag(self):
        bag = {'MIMEType': 'image/jpeg', 'DateTimeOriginal': '2024:01:15 12:00:00', 'OffsetTime': '+02:00'}
        resolved = resolve_properties(bag)
        assert resolved.datetime == utc(2024, 1, 15, 10, 0, 0)
        assert resolved.offset == '+02:00'

    def test_offset_tag_overrides_suffix(self):
        bag = {
            'MIMEType': 'image/jpeg',
            'DateTimeCreated': '2024:01:15 12:00:00+05:00',
            'OffsetTimeOriginal': '+02:00',
        }
        assert resolve_properties(bag).datetime == utc(2024, 1, 15, 10, 0, 0)

    def test_malformed_offset_falls_through(self):
        bag = {'MIMEType': 'image/jpeg', 'OffsetTime': '2:00', 'OffsetTimeOriginal': '-04:00'}
        assert resolve_properties(bag).offset == '-04:00'

    def test_image_without_offset_uses_default_zone(self):
        bag = {'MIMEType': 'image/heic', 'DateTimeOriginal': '2024:01:15 12:00:00'}
        assert resolve_properties(bag, default_tz='Europe/Berlin').datetime == utc(2024, 1, 15, 11, 0, 0)

    def test_video_tags_are_utc(self):
        bag = {'MIMEType': 'video/mp4', 'TrackCreateDate': '2024:01:15 12:00:00', 'OffsetTime': '+02:00'}
        assert resolve_properties(bag, default_tz='Europe/Berlin').datetime == utc(2024, 1, 15, 12, 0, 0)

    def test_quicktime_tags_are_local(self):
        bag = {
            'MIMEType': 'video/quicktime',
            'Quicktime:CreationDate': '2024:01:15 12:00:00+05:30',
            'CreateDate': '2024:01:15 06:30:00',
        }
        assert resolve_properties(bag).datetime == utc(2024, 1, 15, 6, 30, 0)

    def test_title_skips_blank(self):
        bag = {'MIMEType': 'image/jpeg', 'Title': '   ', 'Description': 'Beach day'}
        assert resolve_properties(bag).title == 'Beach day'

    def test_keywords_string_and_list(self):
        assert resolve_properties({'MIMEType': 'image/jpeg', 'Subject': 'Family'}).keywords == ['Family']
        bag = {'MIMEType': 'image/jpeg', 'Keywords': ['Family', 'Birthday']}
        assert resolve_properties(bag).keywords == ['Family', 'Birthday']

    def test_xp_keywords_split(self):
        bag = {'MIMEType': 'image/jpeg', 'XPKeywords': 'Family;Birthday'}
        assert resolve_properties(bag).keywords == ['Family', 'Birthday']

    def test_keyword_priority(self):
        bag = {'MIMEType': 'video/mp4', 'Category': 'Trip', 'Keywords': ['Family']}
        assert resolve_properties(bag).keywords == ['Trip']

    def test_missing_values_are_none(self):
        resolved = resolve_properties({'MIMEType': 'image/png'})
        assert resolved.datetime is None
        assert resolved.offset is None
        assert resolved.title is None
        assert resolved.keywords == []

    def test_passthrough_keeps_mime_and_gps(self):
        bag = {
            'MIMEType': 'image/jpeg',
            'Title': 'x',
            'GPSLatitude': 48.85,
            'GPSLatitudeRef': 'N',
            'GPSLongitude': 'not a number',
        }
        passthrough = resolve_properties(bag).passthrough
        assert passthrough['MIMEType'] == 'image/jpeg'
        assert passthrough['GPSLatitude'] == 48.85
        assert 'GPSLongitude' not in passthrough
        assert 'Title' not in passthrough

    @pytest.mark.parametrize('mime_type', [None, 'application/pdf', 'text/plain'])
    def test_non_media_raises(self, mime_type):
        bag = {'MIMEType': mime_type} if mime_type else {}
        with pytest.raises(ExtractionError):
            resolve_properties(bag)


class TestHelpers:
    """Tests for expand_tags() and clean_gps()."""

    def test_expand_tags(self):
        tags = expand_tags(['Title'])
        assert tags[:4] == ['Title', 'Description', 'XPTitle', 'ImageDescription']
        assert 'MIMEType' in tags

    def test_clean_gps_ranges(self):
        gps = clean_gps({'GPSLatitude': 91.0, 'GPSLongitude': -122.4, 'GPSAltitudeRef': 1})
        assert gps == {'GPSLongitude': -122.4, 'GPSAltitudeRef': 1}

    def test_clean_gps_coordinates(self):
        assert clean_gps({'GPSCoordinates': '37.77 -122.41 15.2'}) == {'GPSCoordinates': '37.77 -122.41 15.2'}
        assert clean_gps({'GPSCoordinates': 'north'}) == {}
