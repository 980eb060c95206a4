import argparse
import asyncio
import logging
import os

from textbehind.config import load_config
from textbehind.models.segmentation import build_segmenter
from textbehind.presets import PLATFORM_PRESETS
from textbehind.session import EditingSession
from textbehind.utils.io import load_layers
from textbehind.utils.log import setup_logging

logger = logging.getLogger(__name__)


async def process_image(args: argparse.Namespace) -> None:
    """Compose text layers behind the subject of one image and write the exports."""
    config = load_config(args.config)
    if args.format is not None:
        config.export.format = args.format
    if args.quality is not None:
        config.export.quality = args.quality

    layers = load_layers(args.layers)
    segmenter = build_segmenter(config.segmentation.backend, **config.segmentation.params)

    async with EditingSession(segmenter, config) as session:
        session.load_image(args.input)
        for layer in layers:
            session.add_layer(**layer.to_dict())

        result = await session.process()
        if result is None:
            raise RuntimeError("Composite was discarded before it finished")
        if result.degraded:
            logger.warning("Segmentation failed; the output has no subject occlusion")

        os.makedirs(args.output_dir, exist_ok=True)
        session.export().save(args.output_dir)

        presets = [p.id for p in PLATFORM_PRESETS] if args.all_presets else args.preset
        if presets:
            for exported in session.export_presets(presets).values():
                exported.save(args.output_dir)

    logger.info("Processing completed!")


if __name__ == "__main__":
    parser = argparse.ArgumentParser()
    # Input/output
    parser.add_argument("--input", type=str, required=True, help="Source image file")
    parser.add_argument(
        "--layers",
        type=str,
        required=True,
        help='JSON file with a list of text layers, or {"layers": [...]}',
    )
    parser.add_argument("--output-dir", type=str, required=True, help="Output directory to save results")
    parser.add_argument("--config", type=str, default=None, help="YAML config file; defaults are used if omitted")
    # Export
    parser.add_argument(
        "--preset",
        type=str,
        nargs="+",
        default=None,
        choices=[p.id for p in PLATFORM_PRESETS],
        help="Platform presets to export in addition to the full-size image",
    )
    parser.add_argument("--all-presets", action="store_true", help="Export every platform preset")
    parser.add_argument(
        "--format",
        type=str,
        default=None,
        choices=["png", "jpeg"],
        help="Output format. Overrides export.format from the config",
    )
    parser.add_argument(
        "--quality",
        type=int,
        default=None,
        help="JPEG quality in [0, 100]. Overrides export.quality from the config",
    )
    # Others
    parser.add_argument(
        "--log-level",
        type=str,
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Set the logging level",
    )
    args = parser.parse_args()

    setup_logging(level=args.log_level, use_tqdm_handler=True)
    asyncio.run(process_image(args))
