import os
import sys
import asyncio
import pytest

# Adjust path to find modules
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '../../')))

from adpipeline.config import settings
from adpipeline.core.Errors import OperationError, UnknownBlockError
from adpipeline.dispatch import OperationDispatcher, create_dispatcher, get_handler, operation, registered_blocks
from adpipeline.dispatch import ffmpeg_operations, files, llm_operations, media_operations, replicate_client
from adpipeline.dispatch.upstream import get_upstream_text, get_upstream_url, is_usable_url
from adpipeline.noderegistry.BlockCatalog import BLOCK_DEFS, EXPORT_BLOCK_ID


def dispatch(block_id, config=None, upstream=None, dispatcher=None):
    dispatcher = dispatcher or create_dispatcher()
    return asyncio.run(dispatcher.dispatch(block_id, config or {}, upstream or {}))


class TestOperationRegistry:

    def test_every_block_but_export_has_a_handler(self):
        expected = {b.id for b in BLOCK_DEFS} - {EXPORT_BLOCK_ID}
        assert set(registered_blocks()) == expected
        assert get_handler("script_writer") is llm_operations.write_script
        assert get_handler(EXPORT_BLOCK_ID) is None

    def test_duplicate_registration_is_rejected(self):
        with pytest.raises(ValueError):
            @operation("script_writer")
            async def another_script_writer(config, upstream):
                return {}

    def test_registration_for_unknown_block(self):
        with pytest.raises(UnknownBlockError):
            @operation("teleporter")
            async def teleport(config, upstream):
                return {}

    def test_export_cannot_be_registered(self):
        with pytest.raises(ValueError):
            @operation(EXPORT_BLOCK_ID)
            async def export(config, upstream):
                return {}


class TestOperationDispatcher:

    def test_unknown_block_is_a_failure_envelope(self):
        result = dispatch("teleporter")
        assert result.to_dict() == {"success": False, "error": "Unknown block type 'teleporter'"}

    def test_block_without_handler_gets_generic_success(self):
        result = dispatch("sound_tracker", dispatcher=OperationDispatcher(handlers={}))
        assert result.success
        assert result.output == {"message": 'Block "sound_tracker" executed successfully.', "type": "text"}

    def test_operation_error_becomes_failure(self):
        async def handler(config, upstream):
            raise OperationError("needs an image")

        result = dispatch("remove_bg", dispatcher=OperationDispatcher(handlers={"remove_bg": handler}))
        assert result.to_dict() == {"success": False, "error": "needs an image"}

    def test_unexpected_exception_becomes_failure(self):
        async def handler(config, upstream):
            raise ZeroDivisionError()

        result = dispatch("remove_bg", dispatcher=OperationDispatcher(handlers={"remove_bg": handler}))
        assert not result.success
        assert result.error == "ZeroDivisionError"

    def test_output_is_normalized(self):
        async def handler(config, upstream):
            return {"caption": "hi", "video_url": None}

        result = dispatch("caption_writer", dispatcher=OperationDispatcher(handlers={"caption_writer": handler}))
        assert result.output == {"caption": "hi", "type": "text"}


class TestUpstreamHelpers:

    def test_video_before_image_within_an_entry(self):
        upstream = {"media": {"image_url": "/a.png", "video_url": "/a.mp4"}}
        assert get_upstream_url(upstream) == "/a.mp4"

    def test_first_entry_wins(self):
        upstream = {"image": {"image_url": "/first.png"}, "video": {"video_url": "/second.mp4"}}
        assert get_upstream_url(upstream) == "/first.png"

    def test_text_priority(self):
        upstream = {"out": {"caption": "c", "hooks": "h", "text": "t"}}
        assert get_upstream_text(upstream) == "h"
        assert get_upstream_text({"out": {"variations": "v"}}) == "v"
        assert get_upstream_text({}) is None

    def test_usable_url(self):
        assert is_usable_url("/pipeline-output/a.png")
        assert not is_usable_url("blob:http://localhost/123")
        assert not is_usable_url(None)
        assert not is_usable_url("")


class TestMediaOperations:

    def test_upload_image(self):
        result = dispatch("media_upload", {"input_image": "/uploads/product.png"})
        assert result.output == {"image_url": "/uploads/product.png", "type": "image"}

    def test_upload_video(self):
        result = dispatch("media_upload", {"input_image": "/uploads/demo.webm"})
        assert result.output == {"video_url": "/uploads/demo.webm", "type": "video"}

    def test_upload_without_usable_file(self):
        for config in ({}, {"input_image": "blob:http://localhost/1"}):
            result = dispatch("media_upload", config)
            assert result.output == {"message": media_operations.UPLOAD_PLACEHOLDER_MESSAGE, "type": "text"}

    def test_unknown_video_model(self):
        result = dispatch("video_generator", {"video_model": "sora"})
        assert result.to_dict() == {"success": False, "error": "Unknown model: sora"}

    def test_video_inputs_per_model_family(self):
        wan = media_operations.build_video_inputs("wan-2.1-i2v", "p", "http://x/a.png", "10s")
        kling = media_operations.build_video_inputs("kling-v2-master", "p", "http://x/a.png", "10s")
        luma = media_operations.build_video_inputs("luma-ray2-flash", "p", "http://x/a.png", "5s")
        text_only = media_operations.build_video_inputs("kling-v2-master", "p", "", "10s")

        assert wan == {"prompt": "p", "image": "http://x/a.png", "num_frames": 81}
        assert kling == {"prompt": "p", "image": "http://x/a.png", "duration": 10}
        assert luma == {"prompt": "p", "image": "http://x/a.png"}
        assert text_only == {"prompt": "p"}

    def test_video_generator_uses_upstream_prompt_and_image(self, monkeypatch):
        calls = []

        async def fake_run(model_ref, inputs, extension):
            calls.append((model_ref, inputs, extension))
            return "/pipeline-output/v.mp4"

        monkeypatch.setattr(replicate_client, "run_model_to_file", fake_run)
        monkeypatch.setattr(settings, "PUBLIC_BASE_URL", "https://ads.example.com")

        upstream = {
            "media": {"image_url": "/pipeline-output/frame.jpg", "type": "image"},
            "prompt": {"script": "HOOK...", "prompt": "HOOK...", "type": "text"},
        }
        result = dispatch("video_generator", {"video_model": "minimax-video-01"}, upstream)

        assert result.output == {"video_url": "/pipeline-output/v.mp4", "type": "video"}
        assert calls == [(
            "minimax/video-01",
            {"prompt": "HOOK...", "image": "https://ads.example.com/pipeline-output/frame.jpg"},
            "mp4",
        )]

    def test_image_generator_prompt_from_scene(self, monkeypatch):
        calls = []

        async def fake_run(model_ref, inputs, extension):
            calls.append((model_ref, inputs))
            return "/pipeline-output/i.png"

        monkeypatch.setattr(replicate_client, "run_model_to_file", fake_run)
        result = dispatch("image_generator", {"scene": "Gym"})

        assert result.output == {"image_url": "/pipeline-output/i.png", "type": "image"}
        model_ref, inputs = calls[0]
        assert model_ref == media_operations.IMAGE_MODEL
        assert "Gym setting" in inputs["prompt"]
        assert inputs["aspect_ratio"] == "9:16"

    def test_remove_bg_needs_an_image(self):
        result = dispatch("remove_bg")
        assert result.error == "Remove BG needs an image URL."

    def test_missing_replicate_token(self, monkeypatch):
        monkeypatch.setattr(settings, "REPLICATE_API_TOKEN", "")
        result = dispatch("remove_bg", {"input_image": "https://cdn.example.com/p.png"})
        assert result.error == "REPLICATE_API_TOKEN not set"

    def test_replicate_output_shapes(self):
        assert replicate_client.extract_output_url("https://r/a.mp4") == "https://r/a.mp4"
        assert replicate_client.extract_output_url(["https://r/a.png", "https://r/b.png"]) == "https://r/a.png"
        assert replicate_client.extract_output_url({"url": "https://r/c.png"}) == "https://r/c.png"
        assert replicate_client.extract_output_url(None) is None

        class FileOutput:
            url = "https://r/d.mp4"

        assert replicate_client.extract_output_url(FileOutput()) == "https://r/d.mp4"

    def fake_client(self, monkeypatch, run):
        created = []

        class Client:
            def __init__(self, api_token):
                created.append(api_token)

            async def async_run(self, ref, input=None):
                return await run(ref, input)

        monkeypatch.setattr(settings, "REPLICATE_API_TOKEN", "r8_test")
        monkeypatch.setattr(replicate_client.replicate, "Client", Client)
        return created

    def test_replicate_run_downloads_output(self, monkeypatch):
        seen = []

        async def run(ref, inputs):
            seen.append((ref, inputs))
            return ["https://replicate.delivery/out.png"]

        async def fake_download(url, extension):
            seen.append((url, extension))
            return "/pipeline-output/out.png"

        created = self.fake_client(monkeypatch, run)
        monkeypatch.setattr(replicate_client, "download_to_public", fake_download)

        result = dispatch("remove_bg", {"input_image": "https://cdn.example.com/p.png"})

        assert result.output == {"image_url": "/pipeline-output/out.png", "type": "image"}
        assert created == ["r8_test"]
        assert seen == [
            (media_operations.REMOVE_BG_MODEL, {"image": "https://cdn.example.com/p.png"}),
            ("https://replicate.delivery/out.png", "png"),
        ]

    def test_replicate_error_becomes_failure(self, monkeypatch):
        async def run(ref, inputs):
            raise replicate_client.ReplicateError(status=422, detail="invalid input")

        self.fake_client(monkeypatch, run)
        result = dispatch("image_generator", {"scene": "Gym"})

        assert not result.success
        assert result.error.startswith("Replicate error")

    def test_replicate_timeout(self, monkeypatch):
        async def run(ref, inputs):
            await asyncio.sleep(1)

        self.fake_client(monkeypatch, run)
        monkeypatch.setattr(settings, "REPLICATE_TIMEOUT", 0.01)
        result = dispatch("image_generator")

        assert result.error == f"Replicate prediction for {media_operations.IMAGE_MODEL} timed out"

    def test_empty_replicate_output(self, monkeypatch):
        async def run(ref, inputs):
            return []

        self.fake_client(monkeypatch, run)
        result = dispatch("image_generator")

        assert result.error == f"No output returned from {media_operations.IMAGE_MODEL}"


class TestLLMOperations:

    def setup_method(self):
        self.calls = []

    def fake_llm(self, reply="generated"):
        async def call_llm(model, system_prompt, user_prompt):
            self.calls.append((model, system_prompt, user_prompt))
            return reply
        return call_llm

    def test_script_writer_outputs_script_and_prompt(self, monkeypatch):
        monkeypatch.setattr(llm_operations, "call_llm", self.fake_llm("HOOK / BODY / CTA"))
        result = dispatch("script_writer", {"product_name": "Glow Serum", "llm_model": "gpt-4o"})

        assert result.output == {"script": "HOOK / BODY / CTA", "prompt": "HOOK / BODY / CTA", "type": "text"}
        model, _, user_prompt = self.calls[0]
        assert model == "gpt-4o"
        assert "Product: Glow Serum" in user_prompt

    def test_output_keys_per_block(self, monkeypatch):
        monkeypatch.setattr(llm_operations, "call_llm", self.fake_llm())
        expected = {
            "shop_scraper": "products",
            "competitor_spy": "videos",
            "hashtag_analyzer": "hashtag_data",
            "sound_tracker": "sounds",
            "hook_generator": "hooks",
            "persona_filter": "text",
            "caption_writer": "caption",
            "ab_splitter": "variations",
            "analytics_check": "metrics",
        }
        for block_id, key in expected.items():
            assert dispatch(block_id).output == {key: "generated", "type": "text"}, block_id

    def test_explicit_context_beats_upstream_text(self, monkeypatch):
        monkeypatch.setattr(llm_operations, "call_llm", self.fake_llm())
        upstream = {"products": {"script": "from upstream"}}

        dispatch("hook_generator", {"context": "from config"}, upstream)
        dispatch("hook_generator", {}, upstream)

        assert self.calls[0][2] == "Context: from config"
        assert self.calls[1][2] == "Context: from upstream"

    def test_caption_without_hashtags(self, monkeypatch):
        monkeypatch.setattr(llm_operations, "call_llm", self.fake_llm())
        dispatch("caption_writer", {"include_hashtags": "None", "tone": "Funny"})
        assert self.calls[0][1] == 'Write a viral TikTok caption in "Funny" tone.\nNo hashtags.'

    def test_missing_api_key(self, monkeypatch):
        monkeypatch.setattr(settings, "OPENROUTER_API_KEY", "")
        result = dispatch("sound_tracker", {"niche": "skincare"})
        assert result.to_dict() == {"success": False, "error": "OPENROUTER_API_KEY not set"}


class TestFfmpegOperations:

    def setup_method(self):
        self.commands = []

    def record_ffmpeg(self, fail_times=0):
        state = {"failures": fail_times}

        async def run_ffmpeg(*args):
            self.commands.append(args)
            if state["failures"]:
                state["failures"] -= 1
                raise OperationError("ffmpeg exited with 1")
        return run_ffmpeg

    def use_tmp_dirs(self, monkeypatch, tmp_path):
        monkeypatch.setattr(settings, "PUBLIC_DIR", str(tmp_path))
        monkeypatch.setattr(settings, "OUTPUT_DIR", str(tmp_path / settings.OUTPUT_SUBDIR))

    def test_add_text_needs_an_image(self):
        result = dispatch("add_text", {"text": "SALE"})
        assert result.error == "Add Text needs an image. Upload or connect an upstream image block."

    def test_image_editor_needs_an_image(self):
        assert dispatch("image_editor").error == "Image Editor needs an image."

    def test_watermark_needs_a_video(self):
        result = dispatch("watermark")
        assert result.error == "Remove Watermark needs a video. Connect a Video Generator or upstream video block."

    def test_resize_needs_a_video(self):
        assert dispatch("resize_crop").error == "Resize needs a video. Connect an upstream video block."

    def test_add_text_draws_on_local_image(self, monkeypatch, tmp_path):
        self.use_tmp_dirs(monkeypatch, tmp_path)
        monkeypatch.setattr(ffmpeg_operations, "run_ffmpeg", self.record_ffmpeg())

        upstream = {"image": {"image_url": "/pipeline-output/p.png", "type": "image"}}
        result = dispatch("add_text", {"text": "50% OFF: today", "position": "Top", "color": "Yellow"}, upstream)

        assert result.success
        assert result.output["image_url"].startswith("/pipeline-output/")
        args = self.commands[0]
        assert args[1] == os.path.join(str(tmp_path), "pipeline-output", "p.png")
        drawtext = args[3]
        assert "text='50% OFF\\: today'" in drawtext
        assert "fontcolor=yellow" in drawtext
        assert ":y=50:" in drawtext

    def test_image_editor_action_filters(self):
        assert ffmpeg_operations.image_editor_filter("Crop", "1080", "1080") == "crop=1080:1080"
        assert ffmpeg_operations.image_editor_filter("Add Border", "1", "1") == "pad=iw+40:ih+40:20:20:white"
        assert ffmpeg_operations.image_editor_filter("Brightness", "1", "1") == "eq=brightness=0.1"

    def test_delogo_region(self):
        assert ffmpeg_operations.delogo_region("Bottom-Right", 200, 60) == ("main_w-200-10", "main_h-60-10")
        assert ffmpeg_operations.delogo_region("Top-Left", 120, 40) == ("10", "10")
        assert ffmpeg_operations.delogo_region("Center", 320, 90) == ("(main_w-320)/2", "(main_h-90)/2")

    def test_watermark_sizes(self, monkeypatch, tmp_path):
        self.use_tmp_dirs(monkeypatch, tmp_path)
        monkeypatch.setattr(ffmpeg_operations, "run_ffmpeg", self.record_ffmpeg())

        upstream = {"video": {"video_url": "/pipeline-output/v.mp4", "type": "video"}}
        result = dispatch("watermark", {"size": "Small", "position": "Top-Right"}, upstream)

        assert result.output["type"] == "video"
        assert "delogo=x=main_w-120-10:y=10:w=120:h=40:show=0" in self.commands[0]

    def test_resize_dimensions(self):
        assert ffmpeg_operations.target_dimensions("9:16 (TikTok)") == ("1080", "1920")
        assert ffmpeg_operations.target_dimensions("1:1 (IG)") == ("1080", "1080")
        assert ffmpeg_operations.target_dimensions("16:9 (YT)") == ("1920", "1080")
        assert ffmpeg_operations.resize_filter("Crop", "1080", "1920") == "scale=1080:-2,crop=1080:1920"
        assert ffmpeg_operations.resize_filter("Blur BG", "1080", "1920").startswith("split[original][blur]")

    def test_resize_falls_back_to_scale_only(self, monkeypatch, tmp_path):
        self.use_tmp_dirs(monkeypatch, tmp_path)
        monkeypatch.setattr(ffmpeg_operations, "run_ffmpeg", self.record_ffmpeg(fail_times=1))

        upstream = {"video": {"video_url": "/pipeline-output/v.mp4", "type": "video"}}
        result = dispatch("resize_crop", {"target_ratio": "1:1 (IG)", "fill_mode": "Black Bars"}, upstream)

        assert result.success
        assert len(self.commands) == 2
        assert "scale=1080:-2" in self.commands[1]

    def test_resize_reports_failure_when_fallback_fails(self, monkeypatch, tmp_path):
        self.use_tmp_dirs(monkeypatch, tmp_path)
        monkeypatch.setattr(ffmpeg_operations, "run_ffmpeg", self.record_ffmpeg(fail_times=2))

        upstream = {"video": {"video_url": "/pipeline-output/v.mp4", "type": "video"}}
        assert dispatch("resize_crop", {}, upstream).error == "Resize failed."

    def test_asset_extractor_falls_back_to_message(self, monkeypatch, tmp_path):
        self.use_tmp_dirs(monkeypatch, tmp_path)
        monkeypatch.setattr(ffmpeg_operations, "run_ffmpeg", self.record_ffmpeg(fail_times=1))

        result = dispatch("asset_extractor", {"video_url": "/pipeline-output/v.mp4"})
        assert result.output == {"message": "Asset extraction ready. Processing video...", "type": "text"}

        result = dispatch("asset_extractor")
        assert result.output["message"] == "Asset extraction ready. Connect a video source to extract frames."

    def test_asset_extractor_first_frame(self, monkeypatch, tmp_path):
        self.use_tmp_dirs(monkeypatch, tmp_path)
        monkeypatch.setattr(ffmpeg_operations, "run_ffmpeg", self.record_ffmpeg())

        upstream = {"video": {"video_url": "/pipeline-output/v.mp4"}}
        result = dispatch("asset_extractor", {}, upstream)

        assert result.output["type"] == "image"
        assert result.output["first_frame"] == result.output["image_url"]
        assert result.output["image_url"].endswith(".jpg")
        assert ("-vframes", "1") == self.commands[0][2:4]

    def test_public_paths_cannot_escape_public_dir(self, monkeypatch, tmp_path):
        self.use_tmp_dirs(monkeypatch, tmp_path)
        with pytest.raises(OperationError):
            files.public_to_local("/../../etc/passwd")
