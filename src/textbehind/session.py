"""Editing session: owns the uploaded image, the live layer list and the current composite.

Layer edits are plain state changes. Segmentation runs only on :meth:`EditingSession.process`,
and every render works on an immutable snapshot of the layers, so edits made while a
render is pending never affect it. Each ``load_image`` and ``reset`` starts a new
generation; a render that finishes for an older generation is discarded, and so
is one that finishes after a newer render of the same generation was stored.
"""

import asyncio
import functools
import logging
from enum import Enum
from types import TracebackType
from typing import Any

from PIL import Image

from textbehind.config import AppConfig, RenderConfig
from textbehind.errors import SegmentationFailure, SessionStateError
from textbehind.export import ExportController, ExportedImage
from textbehind.layers import TextLayer
from textbehind.models.segmentation import BaseSegmenter
from textbehind.presets import PlatformPreset
from textbehind.render.compositor import CompositeResult, Compositor
from textbehind.render.fonts import FontResolver
from textbehind.render.surface import ImageSource, load_image

logger = logging.getLogger(__name__)


class SessionState(Enum):
    EMPTY = "empty"
    IMAGE_LOADED = "image_loaded"
    COMPOSED = "composed"


def build_compositor(config: RenderConfig) -> Compositor:
    fonts = FontResolver(fonts=config.fonts, default_font=config.default_font, font_dirs=config.font_dirs)
    return Compositor(
        fonts=fonts,
        font_size_mode=config.font_size_mode,
        reference_height=config.reference_height,
        max_dimension=config.max_dimension,
    )


class EditingSession:
    """Single owner of one editing session's state.

    Args:
        segmenter: Segmentation backend. The session closes it in :meth:`aclose`.
        config: Application config; defaults are used if omitted.
        compositor: Composite engine; built from ``config.render`` if omitted.
        exporter: Export controller; built around ``compositor`` if omitted.
    """

    def __init__(
        self,
        segmenter: BaseSegmenter,
        config: AppConfig | None = None,
        compositor: Compositor | None = None,
        exporter: ExportController | None = None,
    ) -> None:
        self.config = config or AppConfig()
        self.segmenter = segmenter
        self.compositor = compositor or build_compositor(self.config.render)
        self.exporter = exporter or ExportController(self.compositor, max_dimension=self.config.render.max_dimension)

        self._image: Image.Image | None = None
        self._layers: list[TextLayer] = []
        self._selected_id: str | None = None
        self._result: CompositeResult | None = None
        self._generation = 0
        # Request sequence numbers: last issued, and the one whose result is stored.
        self._render_seq = 0
        self._stored_seq = 0
        self._edit_renders: set[asyncio.Task] = set()

    @property
    def state(self) -> SessionState:
        if self._image is None:
            return SessionState.EMPTY
        if self._result is None:
            return SessionState.IMAGE_LOADED
        return SessionState.COMPOSED

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def image(self) -> Image.Image | None:
        return self._image

    @property
    def result(self) -> CompositeResult | None:
        return self._result

    @property
    def layers(self) -> tuple[TextLayer, ...]:
        return tuple(self._layers)

    @property
    def selected_layer(self) -> TextLayer | None:
        if self._selected_id is None:
            return None
        return self._layers[self._index(self._selected_id)]

    @property
    def render_policy(self) -> str:
        return self.config.render.policy

    # Image

    def load_image(self, source: ImageSource) -> None:
        """Start over with a new source image. Layers, selection and result are dropped.

        Raises:
            ImageDecodeError: If the source cannot be decoded. The session is unchanged.
        """
        image = load_image(source, "source")
        self._image = image
        self._layers.clear()
        self._selected_id = None
        self._result = None
        self._generation += 1
        logger.info(f"Loaded {image.width}x{image.height} image (generation {self._generation})")

    def reset(self) -> None:
        """Discard the composite and return to editing. Layers are kept."""
        self._require_image()
        self._result = None
        self._generation += 1
        logger.info(f"Session reset (generation {self._generation})")

    # Layers

    def add_layer(self, **overrides: Any) -> TextLayer:
        """Append a new layer on top of the others and select it."""
        self._require_image()
        layer = TextLayer.create(**overrides)
        self._layers.append(layer)
        self._selected_id = layer.id
        self._after_edit()
        return layer

    def update_layer(self, layer_id: str, **fields: Any) -> TextLayer:
        """Merge ``fields`` into a layer. Its position in the stack does not change."""
        self._require_image()
        index = self._index(layer_id)
        layer = self._layers[index].merged(**fields)
        self._layers[index] = layer
        self._after_edit()
        return layer

    def delete_layer(self, layer_id: str) -> None:
        self._require_image()
        del self._layers[self._index(layer_id)]
        if self._selected_id == layer_id:
            self._selected_id = None
        self._after_edit()

    def select_layer(self, layer_id: str | None) -> None:
        if layer_id is not None:
            self._index(layer_id)
        self._selected_id = layer_id

    # Rendering

    async def process(
        self,
        width: int | None = None,
        height: int | None = None,
        format: str | None = None,
        quality: int | None = None,
    ) -> CompositeResult | None:
        """Segment the source image and compose the current layers over it.

        Returns:
            The new composite, or None when it was superseded before it finished:
            the session moved on (reset or a new image), or a newer render was
            already stored.

        Raises:
            SegmentationFailure: If segmentation fails and the failure policy is
                "propagate". The previous composite is kept.
        """
        self._require_image()
        generation = self._generation
        request = self._next_request()
        image = self._image
        degraded = False

        logger.info(f"Segmentation started (generation {generation}, request {request})")
        try:
            foreground: Image.Image | None = await self._segment(image)
            logger.info(f"Segmentation finished (generation {generation}, request {request})")
        except SegmentationFailure as e:
            if self._is_stale(generation, request):
                return None
            if self.config.segmentation.on_failure == "propagate":
                raise
            logger.warning(f"Segmentation failed, composing without occlusion: {e}")
            foreground = None
            degraded = True

        if self._is_stale(generation, request):
            return None
        job = self._render_job(image, foreground, width, height, format, quality, generation, degraded)
        return self._store(await asyncio.to_thread(job), request)

    async def rerender(
        self,
        width: int | None = None,
        height: int | None = None,
        format: str | None = None,
        quality: int | None = None,
    ) -> CompositeResult | None:
        """Re-compose the current layers from the cached planes without segmenting again."""
        result = self._require_result()
        request = self._next_request()
        if width is None or height is None:
            width, height = result.output.size
        job = self._render_job(
            result.background,
            result.foreground,
            width,
            height,
            format or result.output.format,
            result.output.quality if quality is None else quality,
            self._generation,
            result.degraded,
        )
        return self._store(await asyncio.to_thread(job), request)

    async def wait_rendered(self) -> CompositeResult | None:
        """Wait for re-renders scheduled by edits under the eager policy.

        Raises:
            SurfaceUnavailable: If a scheduled re-render failed.
        """
        while self._edit_renders:
            await asyncio.gather(*list(self._edit_renders))
        return self._result

    # Export

    def export(
        self,
        preset: PlatformPreset | str | None = None,
        format: str | None = None,
        quality: int | None = None,
    ) -> ExportedImage:
        """Export the current composite, or the raw upload if nothing was composed yet."""
        self._require_image()
        source = self._result if self._result is not None else self._image
        return self.exporter.export(
            source,
            preset,
            format=format or self.config.export.format,
            quality=self.config.export.quality if quality is None else quality,
        )

    def export_presets(
        self,
        presets: list[PlatformPreset | str] | None = None,
        format: str | None = None,
        quality: int | None = None,
    ) -> dict[str, ExportedImage]:
        self._require_image()
        source = self._result if self._result is not None else self._image
        return self.exporter.export_presets(
            source,
            presets,
            format=format or self.config.export.format,
            quality=self.config.export.quality if quality is None else quality,
        )

    # Lifecycle

    async def aclose(self) -> None:
        for task in self._edit_renders:
            task.cancel()
        await self.segmenter.aclose()

    async def __aenter__(self) -> "EditingSession":
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    # Internals

    async def _segment(self, image: Image.Image) -> Image.Image:
        timeout = self.config.segmentation.timeout_sec
        try:
            return await asyncio.wait_for(self.segmenter(image), timeout=timeout)
        except asyncio.TimeoutError as e:
            raise SegmentationFailure(f"Segmentation timed out after {timeout}s") from e

    def _next_request(self) -> int:
        self._render_seq += 1
        return self._render_seq

    def _render_job(
        self,
        background: Image.Image,
        foreground: Image.Image | None,
        width: int | None,
        height: int | None,
        format: str | None,
        quality: int | None,
        generation: int,
        degraded: bool,
    ) -> functools.partial:
        # Snapshot at hand-off: edits from here on wait for the next render.
        return functools.partial(
            self.compositor.compose_result,
            background,
            self.layers,
            foreground,
            width,
            height,
            format or self.config.export.format,
            self.config.export.quality if quality is None else quality,
            generation,
            degraded,
        )

    def _store(self, result: CompositeResult, request: int) -> CompositeResult | None:
        if self._is_stale(result.generation, request):
            return None
        self._result = result
        self._stored_seq = request
        output = result.output
        logger.info(
            f"Composite produced: {output.width}x{output.height} {output.format}, "
            f"{len(result.text_layers)} layer(s){' (degraded)' if result.degraded else ''}"
        )
        return result

    def _after_edit(self) -> None:
        if self.render_policy != "eager" or self._result is None:
            return
        previous = self._result
        request = self._next_request()
        job = self._render_job(
            previous.background,
            previous.foreground,
            previous.output.width,
            previous.output.height,
            previous.output.format,
            previous.output.quality,
            previous.generation,
            previous.degraded,
        )
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            # No event loop to hand the render to, so it runs inline.
            self._store(job(), request)
            return
        task = asyncio.create_task(self._run_edit_render(job, request))
        self._edit_renders.add(task)
        task.add_done_callback(self._edit_renders.discard)

    async def _run_edit_render(self, job: functools.partial, request: int) -> CompositeResult | None:
        return self._store(await asyncio.to_thread(job), request)

    def _is_stale(self, generation: int, request: int) -> bool:
        if generation != self._generation:
            logger.info(f"Discarding stale result of generation {generation} (current {self._generation})")
            return True
        if request < self._stored_seq:
            logger.info(f"Discarding result of request {request}, superseded by request {self._stored_seq}")
            return True
        return False

    def _index(self, layer_id: str) -> int:
        for i, layer in enumerate(self._layers):
            if layer.id == layer_id:
                return i
        raise KeyError(f"Unknown layer id: {layer_id}")

    def _require_image(self) -> None:
        if self._image is None:
            raise SessionStateError("No image loaded")

    def _require_result(self) -> CompositeResult:
        if self._result is None:
            raise SessionStateError("Nothing has been composed yet")
        return self._result
