"""Converter configuration -- built-in defaults with optional JSON overrides."""

import json
from dataclasses import dataclass, field, fields
from typing import List


@dataclass
class ConverterConfig:
    """Settings for batch conversion.

    Model names are fixed; these only steer how files are collected,
    where output goes and how results are reported.
    """

    output_dir_name: str = 'Converted'
    extensions: List[str] = field(default_factory=lambda: ['.rw2'])
    recursive: bool = False
    workers: int = 1
    preserve_timestamps: bool = True
    backup_suffix: str = '.bak'
    max_error_messages: int = 5

    @classmethod
    def default(cls) -> 'ConverterConfig':
        """Return the built-in defaults."""
        return cls()

    @classmethod
    def from_json(cls, path) -> 'ConverterConfig':
        """Load settings from a JSON file on top of the defaults.

        JSON format::

            {
              "output_dir_name": "Converted",
              "extensions": [".rw2"],
              "recursive": false,
              "workers": 1,
              "preserve_timestamps": true,
              "backup_suffix": ".bak",
              "max_error_messages": 5
            }

        All keys are optional. Unknown keys raise ValueError.
        """
        with open(str(path), 'r') as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise ValueError(f'{path}: expected a JSON object')

        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(f'{path}: unknown config keys: {", ".join(unknown)}')

        config = cls.default()
        for key, value in data.items():
            setattr(config, key, value)
        config.extensions = [e.lower() if e.startswith('.') else '.' + e.lower()
                             for e in config.extensions]
        if config.workers < 1:
            raise ValueError(f'{path}: workers must be >= 1')
        return config
