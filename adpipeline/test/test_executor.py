import os
import sys
import asyncio
import pytest

# Adjust path to find modules
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '../../')))

from adpipeline.config import settings
from adpipeline.core.Errors import GraphCycleError, PipelineBusyError
from adpipeline.core.Executor import EXPORT_NO_MEDIA_ERROR, Executor
from adpipeline.core.GraphPrimitives import PipelineGraph
from adpipeline.core.Interface import IOperationDispatcher, OperationResult
from adpipeline.core.Types import MediaKind, NodeStatus
from adpipeline.dispatch import create_dispatcher
from adpipeline.test.fakes import FakeDispatcher, NodeRecordingDispatcher


def hook_node(graph, tag, x=0):
    node = graph.add_node("hook_generator", (x, 0))
    graph.set_field(node.id, "context", tag)
    return node


def wire(graph, source, target):
    return graph.add_connection(source.id, "hooks", target.id, "context")


class TestExecutorScenarios:

    def setup_method(self):
        self.graph = PipelineGraph("Scenarios")

    def test_single_node_runs_with_empty_bundle(self):
        node = self.graph.add_node("script_writer")
        dispatcher = FakeDispatcher(outputs={"script_writer": {"script": "HOOK/BODY/CTA", "type": "text"}})

        results = asyncio.run(Executor(self.graph, dispatcher).run())

        assert len(dispatcher.calls) == 1
        assert dispatcher.calls[0][2] == {}
        assert node.status == NodeStatus.DONE
        assert list(results.keys()) == [node.id]
        assert results[node.id].data["script"] == "HOOK/BODY/CTA"

    def test_upload_feeds_video_generator(self):
        upload = self.graph.add_node("media_upload")
        video = self.graph.add_node("video_generator")
        self.graph.set_field(video.id, "prompt", "test")
        self.graph.add_connection(upload.id, "media", video.id, "first_frame")

        dispatcher = FakeDispatcher(outputs={
            "media_upload": {"image_url": "/uploads/product.png", "type": "image"},
            "video_generator": {"video_url": "/pipeline-output/v.mp4", "type": "video"},
        })
        asyncio.run(Executor(self.graph, dispatcher).run())

        assert [c[0] for c in dispatcher.calls] == ["media_upload", "video_generator"]
        _, config, bundle = dispatcher.calls_for("video_generator")[0]
        assert config["prompt"] == "test"
        assert bundle["media"]["image_url"] == "/uploads/product.png"
        assert video.output.url == "/pipeline-output/v.mp4"
        assert video.output.kind == MediaKind.VIDEO

    def test_upload_without_file_leaves_video_generator_to_report(self, monkeypatch):
        monkeypatch.setattr(settings, "REPLICATE_API_TOKEN", "")
        upload = self.graph.add_node("media_upload")
        video = self.graph.add_node("video_generator")
        self.graph.set_field(video.id, "prompt", "test")
        self.graph.add_connection(upload.id, "media", video.id, "first_frame")

        results = asyncio.run(Executor(self.graph, create_dispatcher()).run())

        assert upload.status == NodeStatus.DONE
        assert "image_url" not in results[upload.id].data
        assert video.status == NodeStatus.ERROR
        assert video.error == "REPLICATE_API_TOKEN not set"

    def test_failed_producer_leaves_consumer_idle(self):
        hooks = self.graph.add_node("hook_generator")
        caption = self.graph.add_node("caption_writer")
        self.graph.add_connection(hooks.id, "hooks", caption.id, "script_in")

        dispatcher = FakeDispatcher(failures={"hook_generator": "OPENROUTER_API_KEY not set"})
        executor = Executor(self.graph, dispatcher)
        results = asyncio.run(executor.run())

        assert hooks.status == NodeStatus.ERROR
        assert hooks.error == "OPENROUTER_API_KEY not set"
        assert caption.status == NodeStatus.IDLE
        assert list(results.keys()) == [hooks.id]
        assert results[hooks.id].type == "error"
        assert executor.skipped == [caption.id]
        assert dispatcher.calls_for("caption_writer") == []

    def test_independent_roots_both_run(self):
        a = self.graph.add_node("shop_scraper")
        b = self.graph.add_node("sound_tracker")

        results = asyncio.run(Executor(self.graph, FakeDispatcher()).run())

        assert a.status == NodeStatus.DONE
        assert b.status == NodeStatus.DONE
        assert len(results) == 2


class TestExecutorOrdering:

    def setup_method(self):
        self.graph = PipelineGraph("Ordering")

    def test_diamond_dispatches_join_once_after_both_branches(self):
        root = hook_node(self.graph, "root")
        left = hook_node(self.graph, "left")
        right = hook_node(self.graph, "right")
        join = hook_node(self.graph, "join")
        wire(self.graph, root, left)
        wire(self.graph, root, right)
        wire(self.graph, left, join)
        wire(self.graph, right, join)

        dispatcher = NodeRecordingDispatcher()
        asyncio.run(Executor(self.graph, dispatcher).run())

        assert dispatcher.started().count("join") == 1
        assert dispatcher.index("start", "join") > dispatcher.index("end", "left")
        assert dispatcher.index("start", "join") > dispatcher.index("end", "right")

    def test_every_node_starts_after_its_ancestors_finish(self):
        tags = ["a", "b", "c", "d", "e"]
        nodes = {tag: hook_node(self.graph, tag) for tag in tags}
        for up, down in [("a", "b"), ("a", "c"), ("b", "d"), ("c", "d"), ("d", "e"), ("a", "e")]:
            wire(self.graph, nodes[up], nodes[down])

        dispatcher = NodeRecordingDispatcher()
        asyncio.run(Executor(self.graph, dispatcher).run())

        assert sorted(dispatcher.started()) == sorted(tags)
        for conn in self.graph.connections:
            up = self.graph.get_node(conn.source_node_id).config["context"].resolve()
            down = self.graph.get_node(conn.target_node_id).config["context"].resolve()
            assert dispatcher.index("end", up) < dispatcher.index("start", down)

    def test_failure_is_contained_to_exclusive_descendants(self):
        root = hook_node(self.graph, "root")
        bad = hook_node(self.graph, "bad")
        good = hook_node(self.graph, "good")
        only_bad = hook_node(self.graph, "only_bad")
        only_bad_child = hook_node(self.graph, "only_bad_child")
        either = hook_node(self.graph, "either")
        wire(self.graph, root, bad)
        wire(self.graph, root, good)
        wire(self.graph, bad, only_bad)
        wire(self.graph, only_bad, only_bad_child)
        wire(self.graph, bad, either)
        wire(self.graph, good, either)

        dispatcher = NodeRecordingDispatcher(fail_tags=["bad"])
        executor = Executor(self.graph, dispatcher)
        asyncio.run(executor.run())

        assert bad.status == NodeStatus.ERROR
        assert only_bad.status == NodeStatus.IDLE
        assert only_bad_child.status == NodeStatus.IDLE
        assert either.status == NodeStatus.DONE
        assert "only_bad" not in dispatcher.started()
        assert executor.skipped == [only_bad.id, only_bad_child.id]
        # the failed branch contributes nothing to the join's bundle
        assert dispatcher.bundles["either"] == {"hooks": {"hooks": "hooks from good", "type": "text"}}

    def test_same_source_port_name_keeps_last_connection(self):
        first = hook_node(self.graph, "first")
        second = hook_node(self.graph, "second")
        caption = self.graph.add_node("caption_writer")
        self.graph.add_connection(first.id, "hooks", caption.id, "script_in")
        self.graph.add_connection(second.id, "hooks", caption.id, "script_in")

        dispatcher = NodeRecordingDispatcher()
        asyncio.run(Executor(self.graph, dispatcher).run())

        assert dispatcher.bundles["caption_writer"]["hooks"]["hooks"] == "hooks from second"

    def test_sequential_mode_runs_one_node_at_a_time(self):
        hook_node(self.graph, "a")
        hook_node(self.graph, "b")

        dispatcher = NodeRecordingDispatcher()
        asyncio.run(Executor(self.graph, dispatcher, concurrent=False).run())

        assert dispatcher.events == [("start", "a"), ("end", "a"), ("start", "b"), ("end", "b")]

    def test_execution_order_follows_definition_order(self):
        c = hook_node(self.graph, "c")
        a = hook_node(self.graph, "a")
        b = hook_node(self.graph, "b")
        wire(self.graph, a, b)

        order = Executor(self.graph, NodeRecordingDispatcher()).build_execution_order()

        assert order == [c.id, a.id, b.id]


class TestExecutorGuards:

    def setup_method(self):
        self.graph = PipelineGraph("Guards")

    def test_cycle_is_rejected_before_anything_runs(self):
        a = hook_node(self.graph, "a")
        b = hook_node(self.graph, "b")
        wire(self.graph, a, b)
        wire(self.graph, b, a)

        dispatcher = FakeDispatcher()
        with pytest.raises(GraphCycleError) as exc_info:
            asyncio.run(Executor(self.graph, dispatcher).run())

        assert set(exc_info.value.node_ids) == {a.id, b.id}
        assert dispatcher.calls == []

    def test_second_concurrent_run_is_rejected(self):
        self.graph.add_node("shop_scraper")
        executor = Executor(self.graph, FakeDispatcher(delays={"shop_scraper": 0.05}))

        async def run_twice():
            return await asyncio.gather(executor.run(), executor.run(), return_exceptions=True)

        first, second = asyncio.run(run_twice())

        assert isinstance(first, dict)
        assert isinstance(second, PipelineBusyError)

    def test_dispatcher_exception_becomes_node_error(self):
        class ExplodingDispatcher(IOperationDispatcher):
            async def dispatch(self, block_id, config, upstream):
                if block_id == "shop_scraper":
                    raise RuntimeError("boom")
                return OperationResult.ok({"text": "fine", "type": "text"})

        bad = self.graph.add_node("shop_scraper")
        ok = self.graph.add_node("sound_tracker")

        results = asyncio.run(Executor(self.graph, ExplodingDispatcher()).run())

        assert bad.status == NodeStatus.ERROR
        assert bad.error == "boom"
        assert ok.status == NodeStatus.DONE
        assert results[bad.id].is_error

    def test_rerun_resets_previous_state(self):
        hooks = self.graph.add_node("hook_generator")
        caption = self.graph.add_node("caption_writer")
        self.graph.add_connection(hooks.id, "hooks", caption.id, "script_in")

        dispatcher = FakeDispatcher(failures={"hook_generator": "down"})
        executor = Executor(self.graph, dispatcher)
        asyncio.run(executor.run())
        assert hooks.status == NodeStatus.ERROR

        dispatcher.failures.clear()
        results = asyncio.run(executor.run())

        assert hooks.status == NodeStatus.DONE
        assert hooks.error is None
        assert caption.status == NodeStatus.DONE
        assert executor.skipped == []
        assert len(results) == 2


class TestExportAndHooks:

    def setup_method(self):
        self.graph = PipelineGraph("Export")

    def test_export_uses_first_upstream_media(self):
        upload = self.graph.add_node("media_upload")
        export = self.graph.add_node("download_export")
        self.graph.add_connection(upload.id, "media", export.id, "video_in")

        dispatcher = FakeDispatcher(outputs={
            "media_upload": {"video_url": "/uploads/clip.mp4", "type": "video"},
        })
        exported = []

        async def on_export(node_id, url):
            exported.append((node_id, url))

        executor = Executor(self.graph, dispatcher)
        executor.on_export = on_export
        results = asyncio.run(executor.run())

        assert results[export.id].type == "download"
        assert results[export.id].data["download_url"] == "/uploads/clip.mp4"
        assert export.output.kind == MediaKind.VIDEO
        assert exported == [(export.id, "/uploads/clip.mp4")]
        # handled by the executor, never dispatched
        assert dispatcher.calls_for("download_export") == []

    def test_export_without_media_errors(self):
        script = self.graph.add_node("script_writer")
        export = self.graph.add_node("download_export")
        self.graph.add_connection(script.id, "script", export.id, "video_in")

        asyncio.run(Executor(self.graph, FakeDispatcher()).run())

        assert export.status == NodeStatus.ERROR
        assert export.error == EXPORT_NO_MEDIA_ERROR

    def test_failing_export_side_channel_does_not_fail_node(self):
        upload = self.graph.add_node("media_upload")
        export = self.graph.add_node("download_export")
        self.graph.add_connection(upload.id, "media", export.id, "image_in")

        async def on_export(node_id, url):
            raise OSError("browser went away")

        executor = Executor(self.graph, FakeDispatcher(outputs={
            "media_upload": {"image_url": "/uploads/p.png", "type": "image"},
        }))
        executor.on_export = on_export
        asyncio.run(executor.run())

        assert export.status == NodeStatus.DONE

    def test_failing_node_hooks_do_not_abort_the_run(self):
        hooks = self.graph.add_node("hook_generator")
        caption = self.graph.add_node("caption_writer")
        persona = self.graph.add_node("persona_filter")
        self.graph.add_connection(hooks.id, "hooks", caption.id, "script_in")
        self.graph.add_connection(caption.id, "caption", persona.id, "text_in")

        async def before(node_id):
            raise RuntimeError("socket closed")

        def after(node_id, ms, error):
            raise RuntimeError("socket closed")

        def skipped(node_id):
            raise RuntimeError("socket closed")

        executor = Executor(self.graph, FakeDispatcher(failures={"caption_writer": "nope"}))
        executor.on_before_node = before
        executor.on_after_node = after
        executor.on_node_skipped = skipped
        results = asyncio.run(executor.run())

        assert hooks.status == NodeStatus.DONE
        assert caption.status == NodeStatus.ERROR
        assert caption.error == "nope"
        assert persona.status == NodeStatus.IDLE
        assert set(results) == {hooks.id, caption.id}
        assert executor.skipped == [persona.id]

    def test_hooks_fire_for_nodes_edges_and_skips(self):
        hooks = self.graph.add_node("hook_generator")
        caption = self.graph.add_node("caption_writer")
        persona = self.graph.add_node("persona_filter")
        first = self.graph.add_connection(hooks.id, "hooks", caption.id, "script_in")
        self.graph.add_connection(caption.id, "caption", persona.id, "text_in")

        events = []

        async def before(node_id):
            events.append(("before", node_id))

        executor = Executor(self.graph, FakeDispatcher(failures={"caption_writer": "nope"}))
        executor.on_before_node = before
        executor.on_after_node = lambda node_id, ms, error: events.append(("after", node_id, error))
        executor.on_edge_data = lambda conn: events.append(("edge", conn.id))
        executor.on_node_skipped = lambda node_id: events.append(("skipped", node_id))
        asyncio.run(executor.run())

        assert events == [
            ("before", hooks.id),
            ("after", hooks.id, None),
            ("before", caption.id),
            ("edge", first.id),
            ("after", caption.id, "nope"),
            ("skipped", persona.id),
        ]
