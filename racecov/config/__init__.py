"""Configuration management for racecov."""

import json
from dataclasses import dataclass, field
from typing import Dict, Any, List, Optional
from pathlib import Path


@dataclass
class SkippedVariables:
    """Locations and functions whose accesses are not recorded."""
    by_name: List[str] = field(default_factory=list)
    by_name_prefix: List[str] = field(default_factory=list)
    by_function: List[str] = field(default_factory=list)
    by_function_prefix: List[str] = field(default_factory=list)


@dataclass
class AnalysisConfig:
    """Configuration for the usage-point analysis."""
    main_thread: str = "main"
    widening_threshold: int = 3
    max_iterations: int = 100000
    strict_empty_lockset_cover: bool = False
    report_self_parallel_pairs: bool = True
    skipped_variables: SkippedVariables = field(default_factory=SkippedVariables)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AnalysisConfig":
        """Build a config from a (possibly partial) dictionary."""
        known = {k: v for k, v in data.items() if k in cls.__dataclass_fields__}
        skipped = known.pop('skipped_variables', None) or {}
        if not isinstance(skipped, SkippedVariables):
            skipped = SkippedVariables(**{k: list(v) for k, v in skipped.items()
                                          if k in SkippedVariables.__dataclass_fields__})
        return cls(skipped_variables=skipped, **known)


class ConfigLoader:
    """Loads configuration from JSON files."""
    
    def __init__(self, config_dir: Optional[str] = None):
        """Initialize config loader.
        
        Args:
            config_dir: Directory containing config files. If None, uses default config directory.
        """
        if config_dir is None:
            self.config_dir = Path(__file__).parent
        else:
            self.config_dir = Path(config_dir)
    
    def load_config(self, config_name: str) -> Dict[str, Any]:
        """Load configuration from a JSON file.
        
        Args:
            config_name: Name of the config file (without .json extension)
            
        Returns:
            Dictionary containing the configuration data
            
        Raises:
            FileNotFoundError: If the config file doesn't exist
            json.JSONDecodeError: If the config file contains invalid JSON
        """
        config_path = self.config_dir / f"{config_name}.json"
        
        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")
        
        with open(config_path, 'r', encoding='utf-8') as f:
            return json.load(f)
    
    def get_analysis_config(self) -> Dict[str, Any]:
        """Load engine defaults."""
        return self.load_config("analysis")


# Global config loader instance
_config_loader = None


def get_config_loader() -> ConfigLoader:
    """Get the global configuration loader instance."""
    global _config_loader
    if _config_loader is None:
        _config_loader = ConfigLoader()
    return _config_loader


def load_analysis_config(config_file: Optional[str] = None) -> AnalysisConfig:
    """Load the analysis configuration.

    Args:
        config_file: Optional JSON file whose entries override the packaged defaults

    Returns:
        AnalysisConfig built from the merged dictionaries
    """
    data = get_config_loader().get_analysis_config()
    if config_file:
        path = Path(config_file)
        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {path}")
        with open(path, 'r', encoding='utf-8') as f:
            data.update(json.load(f))
    return AnalysisConfig.from_dict(data)
