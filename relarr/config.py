"""
Run configuration for relarr.

A run is described by one immutable RelarrConfig built from the built-in
defaults, overlaid by a YAML file and then by explicit overrides (usually
from the command line).  Validation is eager: any unknown key or malformed
value raises ConfigError before any data is touched.
"""

import os
import math
import logging
from dataclasses import dataclass, fields, asdict
from datetime import datetime, timezone

import yaml

from .exceptions import ConfigError, ValidationError
from .io.arrivals import check_taup_phase

logger = logging.getLogger(__name__)

LINKAGE_METHODS = ('single', 'complete', 'average', 'weighted',
                   'centroid', 'median', 'ward')
FILTER_OPTIONS = ('constant', 'variable')
TAPER_TYPES = ('hann', 'hamming', 'blackman', 'bartlett', 'cosine')
TREE_COLORMAPS = ('red2green', 'hsv', 'jet', 'viridis')
NPEAKS_CHOICES = (1, 3, 5, 7)


@dataclass(frozen=True)
class RelarrConfig:
    # input/output
    datedirpath: str = '.'
    datedir: str = ''
    outputdir: str = '.'
    run_id: str = ''

    # phase and header fields
    phase: str = 'P'
    pullarr: bool = True
    model: str = 'iasp91'
    ttfield: str = 'user0'
    snrfield: str = 'user1'
    clusterfield: str = 'user2'

    # earthquake-station geometry cuts (inclusive)
    gccut: tuple = (0.0, 180.0)
    kmcut: tuple = (0.0, math.inf)
    azicut: tuple = (0.0, 360.0)
    bazicut: tuple = (0.0, 360.0)

    # pre-filter processing
    detrend: bool = True
    pretaper: float = 0.05

    # filter bank
    filter_range: tuple = (0.01, 0.1)
    filter_option: str = 'variable'
    filter_width: float = 0.2
    filter_offset: float = 0.1
    filter_corners: int = 4
    filter_zerophase: bool = True

    # quick snr
    qcksnr: bool = True
    qcksnrcut: float = 0.0
    noiswin: tuple = (-100.0, -10.0)
    sigwin: tuple = (-10.0, 60.0)

    # windowing
    window: bool = True
    userwin: bool = False
    intwin: tuple = (-100.0, 100.0)
    fill: bool = True
    filler: float = 0.0

    # tapering
    taper: bool = True
    tapertype: str = 'hann'
    taperhw: float = 0.05

    # correlation
    npeaks: int = 1
    spacing: int = 10
    normxc: bool = True
    absxc: bool = True
    pow2pad: int = 1
    cube: bool = False
    workers: int = 1

    # clustering
    cluster: bool = True
    usercluster: bool = False
    cmethod: str = 'average'
    globaldist: float = 0.2
    treecolormap: str = 'red2green'

    # alignment / preen
    preen: bool = True
    preen_min_records: int = 3
    preen_tolerance: float = 0.1
    preen_max_iter: int = 10
    ntrials: int = 1
    chain_filters: bool = False

    plot: bool = False

    @property
    def date_string(self):
        """Event directory name with the periods removed."""
        return self.datedir.replace('.', '')

    @property
    def input_dir(self):
        return os.path.join(self.datedirpath, self.datedir)

    @property
    def output_basename(self):
        return os.path.join(
            self.outputdir.strip(),
            f"{self.phase.strip()}.event{self.date_string}.run{self.run_id}")

    def to_dict(self):
        return asdict(self)


# value kinds used by the validator
_BOOL = 'bool'
_INT = 'int'
_FLOAT = 'float'
_STR = 'str'
_RANGE = 'range'        # [min, max] with min <= max
_WINDOW = 'window'      # [start, end] with start < end

_SCHEMA = {
    'datedirpath': _STR, 'datedir': _STR, 'outputdir': _STR, 'run_id': _STR,
    'phase': _STR, 'pullarr': _BOOL, 'model': _STR,
    'ttfield': _STR, 'snrfield': _STR, 'clusterfield': _STR,
    'gccut': _RANGE, 'kmcut': _RANGE, 'azicut': _RANGE, 'bazicut': _RANGE,
    'detrend': _BOOL, 'pretaper': _FLOAT,
    'filter_range': _RANGE, 'filter_option': _STR, 'filter_width': _FLOAT,
    'filter_offset': _FLOAT, 'filter_corners': _INT, 'filter_zerophase': _BOOL,
    'qcksnr': _BOOL, 'qcksnrcut': _FLOAT, 'noiswin': _WINDOW, 'sigwin': _WINDOW,
    'window': _BOOL, 'userwin': _BOOL, 'intwin': _WINDOW, 'fill': _BOOL,
    'filler': _FLOAT,
    'taper': _BOOL, 'tapertype': _STR, 'taperhw': _FLOAT,
    'npeaks': _INT, 'spacing': _INT, 'normxc': _BOOL, 'absxc': _BOOL,
    'pow2pad': _INT, 'cube': _BOOL, 'workers': _INT,
    'cluster': _BOOL, 'usercluster': _BOOL, 'cmethod': _STR,
    'globaldist': _FLOAT, 'treecolormap': _STR,
    'preen': _BOOL, 'preen_min_records': _INT, 'preen_tolerance': _FLOAT,
    'preen_max_iter': _INT, 'ntrials': _INT, 'chain_filters': _BOOL,
    'plot': _BOOL,
}

_CHOICES = {
    'filter_option': FILTER_OPTIONS,
    'tapertype': TAPER_TYPES,
    'cmethod': LINKAGE_METHODS,
    'treecolormap': TREE_COLORMAPS,
    'npeaks': NPEAKS_CHOICES,
}


def _normalize_key(key):
    return str(key).strip().lower().replace('-', '_')


def _coerce(key, value):
    kind = _SCHEMA[key]

    if kind == _BOOL:
        # 0/1 flags are accepted as well as true/false
        if isinstance(value, bool):
            return value
        if isinstance(value, int) and value in (0, 1):
            return bool(value)
        raise ConfigError(f"{key} must be a boolean, got {value!r}")

    if kind == _INT:
        if isinstance(value, bool) or not isinstance(value, int):
            if isinstance(value, float) and value.is_integer():
                return int(value)
            raise ConfigError(f"{key} must be an integer, got {value!r}")
        return value

    if kind == _FLOAT:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ConfigError(f"{key} must be a number, got {value!r}")
        value = float(value)
        if math.isnan(value):
            raise ConfigError(f"{key} must not be NaN")
        return value

    if kind == _STR:
        if value is None:
            return ''
        if isinstance(value, (list, dict, tuple, bool)):
            raise ConfigError(f"{key} must be a string, got {value!r}")
        return str(value)

    # two-element ranges and windows
    if isinstance(value, (str, bytes)) or not hasattr(value, '__len__') or len(value) != 2:
        raise ConfigError(f"{key} must be a pair of numbers, got {value!r}")
    try:
        lo, hi = (float(v) for v in value)
    except (TypeError, ValueError):
        raise ConfigError(f"{key} must be a pair of numbers, got {value!r}")
    if math.isnan(lo) or math.isnan(hi):
        raise ConfigError(f"{key} must not contain NaN")
    if kind == _RANGE and lo > hi:
        raise ConfigError(f"{key} lower bound {lo} exceeds upper bound {hi}")
    if kind == _WINDOW and lo >= hi:
        raise ConfigError(f"{key} window start {lo} must precede end {hi}")
    return (lo, hi)


def _validate(values):
    """Check cross-field constraints on an already coerced mapping."""
    for key, choices in _CHOICES.items():
        if values[key] not in choices:
            raise ConfigError(f"{key} must be one of {choices}, got {values[key]!r}")

    if not values['phase'].strip():
        raise ConfigError("phase must not be empty")
    if values['filter_range'][0] <= 0:
        raise ConfigError("filter_range must contain positive frequencies")
    for key in ('filter_width', 'filter_offset'):
        if values[key] <= 0:
            raise ConfigError(f"{key} must be > 0")
    if values['filter_corners'] < 1:
        raise ConfigError("filter_corners must be >= 1")
    for key in ('pretaper', 'taperhw'):
        if not 0.0 <= values[key] <= 0.5:
            raise ConfigError(f"{key} must be within [0, 0.5]")
    if values['qcksnrcut'] < 0:
        raise ConfigError("qcksnrcut must be >= 0")
    if values['globaldist'] < 0:
        raise ConfigError("globaldist must be >= 0")
    if values['spacing'] < 1:
        raise ConfigError("spacing must be >= 1 sample")
    if values['pow2pad'] < 0:
        raise ConfigError("pow2pad must be >= 0")
    if values['workers'] < 1:
        raise ConfigError("workers must be >= 1")
    if values['preen_min_records'] < 2:
        raise ConfigError("preen_min_records must be >= 2")
    if values['preen_tolerance'] < 0:
        raise ConfigError("preen_tolerance must be >= 0")
    if values['preen_max_iter'] < 0:
        raise ConfigError("preen_max_iter must be >= 0")
    if values['ntrials'] < 1:
        raise ConfigError("ntrials must be >= 1")

    # TauP model and phase are only used when arrivals are predicted
    if not values['pullarr']:
        try:
            check_taup_phase(values['phase'], values['model'])
        except ValidationError as e:
            raise ConfigError(str(e)) from e


def read_config_file(path):
    """
    Read a YAML configuration file into a plain dict.

    Raises
    ------
    ConfigError
        If the file cannot be read or is not a YAML mapping.
    """
    try:
        with open(path) as fh:
            cfg = yaml.safe_load(fh)
    except OSError as e:
        raise ConfigError(f"Could not read config file {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"Malformed config file {path}: {e}") from e

    if cfg is None:
        return {}
    if not isinstance(cfg, dict):
        raise ConfigError(f"Config file {path} must contain a key/value mapping")
    return cfg


def default_config():
    """Return the built-in defaults."""
    return load_config()


def load_config(path=None, **overrides):
    """
    Build a complete, validated run configuration.

    Parameters
    ----------
    path : str, optional
        YAML file of key/value pairs overriding the defaults.
    **overrides
        Further overrides applied on top of the file.  ``None`` values are
        ignored so unset command line options fall through.

    Returns
    -------
    config : RelarrConfig

    Raises
    ------
    ConfigError
        On unknown keys, malformed values or an unreadable file.
    """
    values = {f.name: f.default for f in fields(RelarrConfig)}

    layers = []
    if path:
        layers.append((path, read_config_file(path)))
    if overrides:
        layers.append(('overrides', {k: v for k, v in overrides.items() if v is not None}))

    for source, layer in layers:
        for key, value in layer.items():
            norm = _normalize_key(key)
            if norm not in _SCHEMA:
                raise ConfigError(f"Unknown configuration key '{key}' in {source}")
            values[norm] = _coerce(norm, value)

    _validate(values)

    if not values['run_id']:
        values['run_id'] = datetime.now(timezone.utc).strftime('%Y%m%d%H%M%S')

    config = RelarrConfig(**values)
    logger.debug(f"Loaded configuration: {config}")
    return config

