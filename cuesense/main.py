"""CueSense: composition root and command-line entry point.

Wires settings, the LLM provider, the shared call layer and the engines into
one HybridOrchestrator. Nothing in the engine reads the config file itself;
everything it needs is passed in here.

Usage:
    python -m cuesense.main track.wav                # full analysis as JSON
    python -m cuesense.main track.wav --quick        # emotion only
    python -m cuesense.main a.wav b.wav --no-llm     # rule engines only
"""
from __future__ import annotations

import argparse
import asyncio
import dataclasses
import json
import logging
import sys
from typing import List, Optional

from cuesense.services.analysis.orchestrator import HybridOrchestrator
from cuesense.services.analysis.types import TrackMetadata
from cuesense.services.emotion.fusion import EmotionFusionEngine
from cuesense.services.emotion.rule_scorer import RuleEmotionScorer
from cuesense.services.llm.call_layer import LLMCallLayer
from cuesense.services.llm.judges import LLMEmotionJudge, LLMSceneJudge
from cuesense.services.llm.providers import LLMClient, create_client
from cuesense.services.scene.fusion import SceneFusionEngine
from cuesense.services.shared.config import Config, load_config
from cuesense.services.shared.errors import CueSenseError
from cuesense.services.shared.logging import setup_logging_from_config
from cuesense.services.shared.settings import EngineSettings
from cuesense.services.structure.analyzer import StructuralAnalyzer
from cuesense.services.vocabulary.service import StaticVocabularyProvider, VocabularyProvider

logger = logging.getLogger("cuesense.main")


def build_orchestrator(
    config: Optional[Config] = None,
    client: Optional[LLMClient] = None,
    vocabulary: Optional[VocabularyProvider] = None,
    call_layer: Optional[LLMCallLayer] = None,
    use_llm: bool = True,
) -> HybridOrchestrator:
    """Assemble a ready-to-use orchestrator.

    Args:
        config: Settings; defaults to the packaged settings.yaml.
        client: LLM client; built from ``llm`` settings when omitted.
        vocabulary: Approved-term source; defaults to the configured static lists.
        call_layer: Shared call layer; a fresh one per orchestrator when omitted.
        use_llm: False wires rule-only engines (no provider is created).
    """
    config = config or load_config()
    settings = EngineSettings.from_config(config)
    vocabulary = vocabulary or StaticVocabularyProvider.from_config(config)

    scorer = RuleEmotionScorer(settings=settings.scorer)
    structural = StructuralAnalyzer(scorer)

    emotion_judge = scene_judge = None
    if use_llm:
        client = client or create_client(settings.llm)
        call_layer = call_layer or LLMCallLayer.from_settings(settings.llm)
        emotion_judge = LLMEmotionJudge(client, call_layer, vocabulary)
        scene_judge = LLMSceneJudge(client, call_layer, vocabulary)

    return HybridOrchestrator(
        emotion_engine=EmotionFusionEngine(
            scorer, emotion_judge, settings.emotion, complexity=structural.is_complex
        ),
        scene_engine=SceneFusionEngine(scene_judge, settings.scene),
        structural_analyzer=structural,
        structure_enabled=settings.structure_enabled,
    )


# ── CLI ───────────────────────────────────────────────────────────────────────


async def _run(orchestrator: HybridOrchestrator, args: argparse.Namespace) -> List[dict]:
    metadata = TrackMetadata(genre=args.genre or "")
    results = []
    for path in args.files:
        if args.quick:
            audio = orchestrator.extractor.extract_file(path)
            emotion = await orchestrator.quick_analyze(audio.features, path)
            results.append({"file_name": path, "emotion": dataclasses.asdict(emotion)})
        else:
            result = await orchestrator.analyze_file(path, metadata)
            results.append(result.to_dict())
    return results


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Hybrid music emotion and scene analysis")
    parser.add_argument("files", nargs="+", help="Audio files to analyze")
    parser.add_argument("--config", help="Path to settings.yaml")
    parser.add_argument("--genre", help="Genre tag metadata (e.g. orchestral)")
    parser.add_argument("--quick", action="store_true", help="Emotion only")
    parser.add_argument("--no-llm", action="store_true", help="Rule engines only")
    args = parser.parse_args(argv)

    config = load_config(args.config)
    setup_logging_from_config(config)

    orchestrator = build_orchestrator(config, use_llm=not args.no_llm)
    try:
        results = asyncio.run(_run(orchestrator, args))
    except CueSenseError as exc:
        logger.error("Analysis failed: %s", exc)
        return 1

    json.dump(results, sys.stdout, ensure_ascii=False, indent=2)
    sys.stdout.write("\n")
    return 0


if __name__ == "__main__":
    sys.exit(main())
