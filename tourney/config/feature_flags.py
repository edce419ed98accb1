"""
tourney/config/feature_flags.py
Switches for the optional parts of the engine's HTTP surface.

Flags are read once from the environment at import time; a disabled flag
makes the matching routes answer 403 FEATURE_DISABLED.
"""
import os

TRUTHY = ('true', '1', 'yes', 'on', 'enabled')


def get_bool_env(key: str, default: bool = False) -> bool:
    """Read an on/off switch from the environment."""
    return os.getenv(key, str(default)).strip().lower() in TRUTHY


class FeatureFlags:
    """
    Engine feature switches.

    Each flag is a bool class attribute named FEATURE_*, so it shows up in
    get_all_flags() and the /health payload without further wiring.
    """

    # Predictions, odds and settlement payouts
    FEATURE_BETTING_MARKET: bool = get_bool_env('FEATURE_BETTING_MARKET', True)

    # Manager-chosen first round instead of a shuffled bracket
    FEATURE_MANUAL_BRACKET: bool = get_bool_env('FEATURE_MANUAL_BRACKET', True)

    @classmethod
    def is_enabled(cls, flag_name: str) -> bool:
        """Unknown flag names count as disabled."""
        return bool(getattr(cls, flag_name, False))

    @classmethod
    def get_all_flags(cls) -> dict:
        return {
            name: enabled
            for name, enabled in vars(cls).items()
            if name.startswith('FEATURE_') and isinstance(enabled, bool)
        }


feature_flags = FeatureFlags()
