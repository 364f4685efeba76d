"""Info command for mewt CLI.

Shows the emotion catalogue, the rule table and the effective config.
"""

import yaml

from mewt.config import EngineConfig
from mewt.emotions import EMOTION_CATEGORIES, EMOTION_RULES, EMOTIONS, NORMALIZATION_SCALES
from mewt.targets import TARGET_KEYWORDS


def run_info(args) -> int:
    """Show emotion rules and configuration."""
    config = EngineConfig.from_yaml(args.config) if getattr(args, "config", None) else EngineConfig()

    print("mewt - System Information")
    print("=" * 60)
    _print_version_info()

    print("\n[Target Keywords]")
    print("-" * 60)
    for source, keywords in TARGET_KEYWORDS.items():
        print(f"  {source.value:<10} {', '.join(keywords)}")

    print("\n[Emotion Categories]")
    print("-" * 60)
    for category in EMOTION_CATEGORIES:
        members = [e for e in EMOTIONS if e.category_id == category.id]
        print(f"  {category.title} ({len(members)}): {category.description}")
        for emotion in members:
            print(f"    {emotion.icon} {emotion.id:<16} {emotion.title}")

    print("\n[Feature Normalization]")
    print("-" * 60)
    for name, scale in NORMALIZATION_SCALES.items():
        print(f"  {name:<10} x {scale:g}, clamped to [0, 1]")

    print(f"\n[Rules] {len(EMOTION_RULES)} rules, highest confidence wins, first-defined on ties")
    print("-" * 60)
    if getattr(args, "rules", False):
        for rule in EMOTION_RULES:
            print(f"  {rule.emotion_id:<16} {rule.confidence:.2f}  {_describe(rule)}")

    print("\n[Config]")
    print("-" * 60)
    text = yaml.safe_dump(config.to_dict(), sort_keys=False, allow_unicode=True)
    for line in text.rstrip().splitlines():
        print(f"  {line}")
    return 0


def _print_version_info():
    try:
        from mewt import __version__
        print(f"  mewt: {__version__}")
    except ImportError:
        print("  mewt: (version not available)")


def _describe(rule) -> str:
    parts = []
    for name, bounds in rule.conditions:
        if bounds.low is not None and bounds.high is not None:
            parts.append(f"{bounds.low:g} < {name} < {bounds.high:g}")
        elif bounds.low is not None:
            parts.append(f"{name} > {bounds.low:g}")
        else:
            parts.append(f"{name} < {bounds.high:g}")
    return " and ".join(parts)
