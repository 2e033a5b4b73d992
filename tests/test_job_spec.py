"""Tests for request validation and job hashing."""

import pytest

from quotecast.exceptions import InvalidInputError
from quotecast.render.job_spec import (
    JobSpecification,
    StyleParams,
    compute_job_hash,
    validate_render_request,
)
from quotecast.schemas.render import RenderRequest


def _validate(payload: dict, persist_query: bool | None = None) -> JobSpecification:
    return validate_render_request(RenderRequest.model_validate(payload), persist_query=persist_query)


class TestAssetId:
    def test_missing_asset_id_rejected(self):
        """A missing asset id names the field in the error."""
        with pytest.raises(InvalidInputError) as exc_info:
            _validate({"text": "hello"})
        assert exc_info.value.field == "assetId"
        assert exc_info.value.status_code == 400

    @pytest.mark.parametrize("asset_id", ["has space", "a/b", "x" * 51, "semi;colon", 123])
    def test_malformed_asset_id_rejected(self, asset_id):
        with pytest.raises(InvalidInputError):
            _validate({"assetId": asset_id, "text": "hello"})

    def test_aliases_accepted(self):
        """unsplashId and wrappedText are accepted as in older clients."""
        spec = _validate({"unsplashId": "abc-123_X", "wrappedText": "hello"})
        assert spec.asset_id == "abc-123_X"
        assert spec.text == "hello"


class TestText:
    def test_text_trimmed_and_normalized(self):
        spec = _validate({"assetId": "abc", "text": "  line one\r\nline two\x07  "})
        assert spec.text == "line one\nline two"

    @pytest.mark.parametrize("text", ["", "   ", "\n\t"])
    def test_empty_text_rejected(self, text):
        with pytest.raises(InvalidInputError) as exc_info:
            _validate({"assetId": "abc", "text": text})
        assert exc_info.value.field == "text"

    def test_missing_text_rejected(self):
        with pytest.raises(InvalidInputError):
            _validate({"assetId": "abc"})

    def test_text_length_limit(self):
        assert len(_validate({"assetId": "abc", "text": "a" * 500}).text) == 500
        with pytest.raises(InvalidInputError):
            _validate({"assetId": "abc", "text": "a" * 501})


class TestDefaultsAndClamping:
    def test_defaults(self):
        """An empty style yields the documented defaults."""
        spec = _validate({"assetId": "abc", "text": "hi"})
        assert spec.template == "center"
        assert spec.preset == "landscape"
        assert (spec.width, spec.height) == (1280, 720)
        assert spec.duration_s == 5
        assert spec.style == StyleParams()
        assert spec.persist is False

    def test_unknown_template_falls_back(self):
        spec = _validate({"assetId": "abc", "text": "hi", "template": "diagonal"})
        assert spec.template == "center"

    def test_known_template_and_preset(self):
        spec = _validate({"assetId": "abc", "text": "hi", "template": "bottom-right", "preset": "portrait"})
        assert spec.template == "bottom-right"
        assert (spec.width, spec.height) == (1080, 1920)

    def test_numeric_style_clamped(self):
        spec = _validate(
            {
                "assetId": "abc",
                "text": "hi",
                "duration": 99,
                "style": {
                    "fontSize": 500,
                    "overlayOpacity": -3,
                    "brightness": 7,
                    "blur": 100,
                    "zoomStart": 9,
                    "zoomEnd": 0.2,
                    "fadeDuration": 0,
                    "wrapWidth": 2,
                },
            }
        )
        assert spec.duration_s == 15
        assert spec.style.font_size == 72
        assert spec.style.overlay_opacity == 0.0
        assert spec.style.brightness == 2.0
        assert spec.style.blur == 20.0
        assert spec.style.zoom_start == 1.5
        assert spec.style.zoom_end == 1.0
        assert spec.style.fade_duration == 0.1
        assert spec.style.wrap_width == 10

    def test_non_numeric_values_use_defaults(self):
        spec = _validate(
            {"assetId": "abc", "text": "hi", "style": {"fontSize": "huge", "overlayOpacity": True}}
        )
        assert spec.style.font_size == 32
        assert spec.style.overlay_opacity == 0.4

    def test_numeric_strings_accepted(self):
        spec = _validate({"assetId": "abc", "text": "hi", "style": {"fontSize": "48"}})
        assert spec.style.font_size == 48

    def test_color_normalized(self):
        spec = _validate({"assetId": "abc", "text": "hi", "style": {"textColor": "#FF0000"}})
        assert spec.style.text_color == "rgba(255,0,0,1)"

    def test_invalid_color_falls_back_to_white(self):
        spec = _validate({"assetId": "abc", "text": "hi", "style": {"fontColor": "octarine"}})
        assert spec.style.text_color == "rgba(255,255,255,1)"

    def test_font_family_sanitized(self):
        spec = _validate(
            {"assetId": "abc", "text": "hi", "style": {"fontFamily": "Inter'; rm -rf /"}}
        )
        assert spec.style.font_family == "Inter rm -rf"


class TestPersistFlag:
    def test_body_flag(self):
        assert _validate({"assetId": "abc", "text": "hi", "persist": True}).persist is True

    def test_query_flag(self):
        assert _validate({"assetId": "abc", "text": "hi"}, persist_query=True).persist is True

    def test_string_flag(self):
        assert _validate({"assetId": "abc", "text": "hi", "persist": "true"}).persist is True


class TestJobHash:
    def test_hash_is_sha256_hex(self):
        job_hash = compute_job_hash(_validate({"assetId": "abc", "text": "hi"}))
        assert len(job_hash) == 64
        int(job_hash, 16)

    def test_equal_specs_hash_equal(self):
        """Omitted fields and explicit defaults normalize to the same hash."""
        implicit = _validate({"assetId": "abc", "text": "hi"})
        explicit = _validate(
            {
                "assetId": "abc",
                "text": "  hi ",
                "template": "center",
                "preset": "landscape",
                "duration": 5,
                "style": {"fontSize": 32, "textColor": "#ffffff", "overlayOpacity": 0.4},
            }
        )
        assert implicit == explicit
        assert compute_job_hash(implicit) == compute_job_hash(explicit)

    def test_unknown_template_hashes_like_default(self):
        a = _validate({"assetId": "abc", "text": "hi", "template": "nope"})
        b = _validate({"assetId": "abc", "text": "hi"})
        assert compute_job_hash(a) == compute_job_hash(b)

    @pytest.mark.parametrize(
        "change",
        [
            {"assetId": "abd"},
            {"text": "hi!"},
            {"template": "bottom"},
            {"preset": "square"},
            {"duration": 6},
            {"persist": True},
            {"style": {"fontSize": 33}},
            {"style": {"blur": 2}},
            {"style": {"zoom": False}},
        ],
    )
    def test_any_field_change_changes_hash(self, change):
        base = {"assetId": "abc", "text": "hi"}
        assert compute_job_hash(_validate(base)) != compute_job_hash(_validate({**base, **change}))

    def test_hash_stable_across_calls(self):
        spec = _validate({"assetId": "abc", "text": "It's 100% fun: enjoy"})
        assert compute_job_hash(spec) == compute_job_hash(spec)
