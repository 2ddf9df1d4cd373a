import json
import sys
from pathlib import Path

from contotermico.config.env import configure_logging
from .config import ConfigurationError, GseConfig
from .engine import calculate_incentive
from .models import SimulationInput
from contotermico.validation.rules import validate_payload


def main(argv=None) -> int:
    args = sys.argv[1:] if argv is None else argv
    if not args or len(args) > 2:
        print("Usage: python -m contotermico.incentive.cli <input.json> [config.json]", file=sys.stderr)
        return 2
    configure_logging()
    payload = json.loads(Path(args[0]).read_text())
    issues = validate_payload(payload)
    if issues:
        print(json.dumps({"issues": [i.to_dict() for i in issues]}, indent=2))
        return 1
    try:
        config = GseConfig.from_json_path(args[1]) if len(args) == 2 else None
        result = calculate_incentive(SimulationInput.from_dict(payload), config)
    except ConfigurationError as e:
        print(f"configuration error: {e}", file=sys.stderr)
        return 1
    print(json.dumps(result.to_dict(), indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
