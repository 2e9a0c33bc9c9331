import yaml
import logging
from pathlib import PurePosixPath
from typing import Dict, Any, List, Optional
from pydantic import BaseModel, Field, ValidationError, model_validator, field_validator, ConfigDict

from . import constants
from .datacls import BuildConfig
from .io.fs import FileSystem, DiskFileSystem
from .exceptions import (
    ConfigurationError,
    ConfigParsingError,
    ConfigFileMissingError,
    ConfigValidationError,
    FnbIOError,
)


logger = logging.getLogger(__name__)

class BuildContextConfig(BaseModel):
    """
        Class describes where templates are read from and contexts are written to
    """
    model_config = ConfigDict(frozen=True)

    # Directory where the build context will be created.
    build_dir: str = constants.DEFAULT_BUILD_DIR
    # Directory used to lookup templates.
    template_dir: str = constants.DEFAULT_TEMPLATE_DIR
    # Path where the function handler is overlayed in the selected template.
    template_handler_overlay: str = constants.DEFAULT_TEMPLATE_HANDLER

    @field_validator("template_handler_overlay")
    @classmethod
    def check_overlay_is_relative(cls, v: str) -> str:
        """The overlay must name a folder inside the context"""
        overlay = PurePosixPath(v)
        if overlay.is_absolute() or ".." in overlay.parts or str(overlay) in ("", "."):
            raise ValueError(f"handler overlay must be a relative path inside the context, got '{v}'")
        return v

class BuilderModel(BaseModel):
    """
        Class Config-Validation Model describe `builder`
    """
    url: str
    secret: Optional[str] = Field(default=None, repr=False)
    secret_file: Optional[str] = None
    timeout: float = constants.DEFAULT_BUILDER_TIMEOUT

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Ensure url is a valid URL."""
        if not v.startswith(("http://", "https://")):
            raise ValueError("builder url must start with http:// or https://")
        return v

    @model_validator(mode='after')
    def check_single_secret_source(self) -> 'BuilderModel':
        if self.secret is not None and self.secret_file is not None:
            raise ConfigValidationError("'secret' cannot be used together with 'secret_file'.")
        return self

class FunctionModel(BaseModel):
    """
        Class Config-Validation Model describe one entry of `functions`
    """
    model_config = ConfigDict(populate_by_name=True)

    lang: str
    handler: str
    image: str
    build_args: Dict[str, str] = Field(default_factory=dict)
    platforms: List[str] = Field(default_factory=list)
    copy_paths: List[str] = Field(default_factory=list, alias="copy")

    def to_build_config(self) -> BuildConfig:
        return BuildConfig(
            image=self.image,
            build_args=self.build_args or None,
            platforms=self.platforms or None,
        )

class ConfigModel(BaseModel):
    """
        Class Config-Validation Model desribe top-level of config
    """
    builder: BuilderModel
    context: BuildContextConfig = Field(default_factory=BuildContextConfig)
    functions: Dict[str, FunctionModel]
    model_config = ConfigDict(extra="allow")

    @model_validator(mode='after')
    def validate_function_names(self) -> 'ConfigModel':
        """Function names become directory names below build_dir"""
        for name in self.functions.keys():
            if not constants.FUNCTION_NAME_PATTERN.fullmatch(name):
                raise ConfigValidationError(
                    f"Invalid function name '{name}', must match {constants.FUNCTION_NAME_PATTERN.pattern}."
                )
        return self

class Config:
    """
    Loads and validates the project file using Pydantic models.
    It is the sole gatekeeper for configuration.
    """
    def __init__(self, config_path: str, fs: Optional[FileSystem] = None):
        self.path = config_path
        self.fs = fs or DiskFileSystem()
        logger.info(f"Loading configuration from '{self.path}'...")
        raw_data = self._load_raw_config()

        try:
            self.model = ConfigModel.model_validate(raw_data)
            logger.debug(f"Configuration model validated successfully: \n{self.model.model_dump_json(indent=2, exclude={'builder': {'secret'}})}")
        except ValidationError as e:
            raise ConfigValidationError(f"Configuration validation failed:\n{e}") from e

    def _load_raw_config(self) -> Dict[str, Any]:
        try:
            content = self.fs.read_bytes(self.path).decode("utf-8")
        except (FileNotFoundError, FnbIOError) as e:
            raise ConfigFileMissingError(f"Configuration file not found at: {self.path}") from e
        try:
            config_data = yaml.safe_load(content)
        except yaml.YAMLError as e:
            raise ConfigParsingError(f"Error parsing YAML file: {e}") from e
        if not isinstance(config_data, dict):
            raise ConfigParsingError("Configuration file must be a YAML document containing a dictionary.")
        logger.debug(f"Successfully parsed YAML from '{self.path}'.")
        return config_data

    @property
    def builder_url(self) -> str:
        return self.model.builder.url

    @property
    def timeout(self) -> float:
        return self.model.builder.timeout

    @property
    def context(self) -> BuildContextConfig:
        return self.model.context

    @property
    def functions(self) -> Dict[str, FunctionModel]:
        return self.model.functions

    @property
    def secret(self) -> str:
        builder = self.model.builder
        if builder.secret is not None:
            return builder.secret
        if builder.secret_file is None:
            return ""
        try:
            return self.fs.read_bytes(builder.secret_file).decode("utf-8").strip()
        except (OSError, FnbIOError) as e:
            raise ConfigurationError(f"Unable to read builder secret from '{builder.secret_file}': {e}") from e

    def select(self, names: Optional[List[str]] = None) -> Dict[str, FunctionModel]:
        """Return the named functions, or all of them when no names are given"""
        if not names:
            return dict(self.functions)
        missing = [n for n in names if n not in self.functions]
        if missing:
            raise ConfigValidationError(f"Functions not defined in '{self.path}': {', '.join(missing)}")
        return {n: self.functions[n] for n in names}
