"""
Epoch Matching Utilities Module

Provides utility functions for the output directory layout, checkpoint
files, the per-recording processing log and configuration files.
"""

import os
import json
import pickle
from datetime import datetime
from pathlib import Path
from typing import Dict, Any, Optional
import pandas as pd


def create_output_structure(output_dir: str, recording_id: str) -> str:
    """
    Setup output directories for a recording

    Parameters:
    -----------
    output_dir : str
        Root output directory
    recording_id : str
        Recording identifier (e.g. the .set file stem)

    Returns:
    --------
    recording_dir : str
        Path to the recording's output directory
    """
    recording_dir = os.path.join(output_dir, recording_id)

    subdirs = [
        recording_dir,
        os.path.join(recording_dir, 'checkpoints'),
        os.path.join(recording_dir, 'logs')
    ]

    for subdir in subdirs:
        os.makedirs(subdir, exist_ok=True)

    return recording_dir


def save_checkpoint(data: Any, recording_id: str, stage: str,
                    output_dir: str, format: str = 'pkl') -> str:
    """
    Save intermediate data checkpoint

    Parameters:
    -----------
    data : Any
        Data to save (epoch list, match table, ...)
    recording_id : str
        Recording identifier
    stage : str
        Processing stage name
    output_dir : str
        Output directory
    format : str
        File format ('pkl', 'json', 'csv')

    Returns:
    --------
    filepath : str
        Path to saved file
    """
    checkpoint_dir = os.path.join(output_dir, recording_id, 'checkpoints')
    os.makedirs(checkpoint_dir, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    filename = f"{recording_id}_{stage}_{timestamp}.{format}"
    filepath = os.path.join(checkpoint_dir, filename)

    if format == 'pkl':
        with open(filepath, 'wb') as f:
            pickle.dump(data, f)
    elif format == 'json':
        if isinstance(data, pd.DataFrame):
            data.to_json(filepath, orient='records')
        else:
            with open(filepath, 'w') as f:
                json.dump(data, f, indent=2, default=str)
    elif format == 'csv' and isinstance(data, pd.DataFrame):
        data.to_csv(filepath, index=False)
    else:
        raise ValueError(f"Unsupported format: {format}")

    print(f"Saved checkpoint: {filepath}")
    return filepath


def load_checkpoint(recording_id: str, stage: str, output_dir: str,
                    format: str = 'pkl', timestamp: Optional[str] = None) -> Any:
    """
    Load saved checkpoint data

    Parameters:
    -----------
    recording_id : str
        Recording identifier
    stage : str
        Processing stage name
    output_dir : str
        Output directory
    format : str
        File format ('pkl', 'json', 'csv')
    timestamp : str, optional
        Specific timestamp to load (if None, loads latest)

    Returns:
    --------
    data : Any
        Loaded data
    """
    checkpoint_dir = os.path.join(output_dir, recording_id, 'checkpoints')

    pattern = f"{recording_id}_{stage}_*.{format}"
    checkpoint_files = list(Path(checkpoint_dir).glob(pattern))

    if not checkpoint_files:
        raise FileNotFoundError(f"No checkpoint found for {recording_id}_{stage}")

    if timestamp:
        target_file = Path(checkpoint_dir) / f"{recording_id}_{stage}_{timestamp}.{format}"
        if not target_file.exists():
            raise FileNotFoundError(f"Checkpoint not found: {target_file}")
    else:
        checkpoint_files.sort(key=lambda x: x.stat().st_mtime, reverse=True)
        target_file = checkpoint_files[0]

    if format == 'pkl':
        with open(target_file, 'rb') as f:
            return pickle.load(f)
    elif format == 'json':
        with open(target_file, 'r') as f:
            return json.load(f)
    elif format == 'csv':
        return pd.read_csv(target_file)

    raise ValueError(f"Cannot load file: {target_file}")


def log_processing_stage(recording_id: str, stage: str, timestamp: datetime,
                         output_dir: str, **kwargs) -> None:
    """
    Log processing stage information

    Parameters:
    -----------
    recording_id : str
        Recording identifier
    stage : str
        Processing stage name
    timestamp : datetime
        Timestamp of stage completion
    output_dir : str
        Output directory
    **kwargs : dict
        Additional logging information (e.g. trial counts)
    """
    log_dir = os.path.join(output_dir, recording_id, 'logs')
    os.makedirs(log_dir, exist_ok=True)

    log_file = os.path.join(log_dir, f"{recording_id}_processing_log.json")

    log_entry = {
        'recording_id': recording_id,
        'stage': stage,
        'timestamp': timestamp.isoformat(),
        **kwargs
    }

    if os.path.exists(log_file):
        with open(log_file, 'r') as f:
            log_data = json.load(f)
    else:
        log_data = {'processing_log': []}

    log_data['processing_log'].append(log_entry)

    with open(log_file, 'w') as f:
        json.dump(log_data, f, indent=2, default=str)


def get_processing_log(recording_id: str, output_dir: str) -> Dict[str, Any]:
    """
    Get processing log for a recording
    """
    log_file = os.path.join(output_dir, recording_id, 'logs', f"{recording_id}_processing_log.json")

    if os.path.exists(log_file):
        with open(log_file, 'r') as f:
            return json.load(f)
    else:
        return {'processing_log': []}


def create_config_file(config_path: str, config: Dict[str, Any]) -> str:
    """
    Write a configuration file

    Parameters:
    -----------
    config_path : str
        Path of the JSON file to create
    config : dict
        Configuration parameters

    Returns:
    --------
    config_file : str
        Path to config file
    """
    config_dir = os.path.dirname(config_path)
    if config_dir:
        os.makedirs(config_dir, exist_ok=True)

    with open(config_path, 'w') as f:
        json.dump(config, f, indent=2)

    print(f"Created config file: {config_path}")
    return config_path


def load_config_file(config_path: str) -> Dict[str, Any]:
    """
    Load configuration file
    """
    with open(config_path, 'r') as f:
        config = json.load(f)

    return config
