"""
Record loading module for relarr.

Loads a directory of single-component SAC records for one event.  Files
that cannot be read, or are not time series, are dropped with a warning.
"""

import os
import logging

import numpy as np
from obspy import read, Stream

from ..exceptions import DataError

logger = logging.getLogger(__name__)

# SAC iftype values for time series ('itime' as decoded by obspy, 1 raw)
TIME_SERIES_TYPES = ('itime', 1)


class RecordLoader:
    """
    Loader for a directory of SAC records.

    Parameters
    ----------
    input_dir : str
        Directory containing the event's SAC files
    """

    def __init__(self, input_dir):
        self.input_dir = input_dir

    def list_files(self):
        """Sorted list of regular files in the input directory."""
        if not os.path.isdir(self.input_dir):
            logger.warning(f"Input directory not found: {self.input_dir}")
            return []
        names = sorted(os.listdir(self.input_dir))
        return [os.path.join(self.input_dir, n) for n in names
                if os.path.isfile(os.path.join(self.input_dir, n))]

    def read_record(self, path):
        """
        Read one SAC file.

        Returns
        -------
        trace : obspy.Trace
            With ``stats.filename`` set to the file's basename

        Raises
        ------
        DataError
            If the file is unreadable or not a single time-series record.
        """
        try:
            st = read(path, format='SAC')
        except Exception as e:
            raise DataError(f"{os.path.basename(path)}: unreadable ({e})") from e
        if len(st) != 1:
            raise DataError(f"{os.path.basename(path)}: expected 1 record, found {len(st)}")

        tr = st[0]
        iftype = tr.stats.sac.get('iftype', 'itime')
        if iftype not in TIME_SERIES_TYPES:
            raise DataError(f"{os.path.basename(path)}: not a time series file (iftype={iftype})")

        if tr.data.dtype.kind != 'f':
            tr.data = tr.data.astype(np.float64)
        tr.stats.filename = os.path.basename(path)
        return tr

    def load(self):
        """
        Load all readable time-series records.

        Returns
        -------
        stream : obspy.Stream
        """
        stream = Stream()
        files = self.list_files()
        for path in files:
            try:
                stream.append(self.read_record(path))
            except DataError as e:
                logger.warning(f"{e}; skipping")

        logger.info(f"Loaded {len(stream)} of {len(files)} files from {self.input_dir}")
        return stream


def load_event_records(config):
    """
    Convenience function to load the records of the configured event.

    Parameters
    ----------
    config : RelarrConfig

    Returns
    -------
    stream : obspy.Stream
    """
    return RecordLoader(config.input_dir).load()
