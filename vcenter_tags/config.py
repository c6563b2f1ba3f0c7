"""
YAML configuration.

    vcenter:
      host: vcenter.example.com
      username: administrator@vsphere.local
      password: secret          # optional, see resolve_password()
      verify_ssl: false
    export:
      output_dir: ./backups
      exclude_system_categories: true
      include_usage: false
      system_category_prefix: vSphere
    import:
      update_existing: false
"""

import getpass
import os
import sys
from pathlib import Path

import yaml

PASSWORD_ENV_VAR = "VCENTER_PASSWORD"


def load_config(config_path: str) -> dict:
    """Load and validate YAML configuration file."""
    path = Path(config_path)
    if not path.exists():
        print(f"Error: Config file not found: {config_path}")
        sys.exit(1)

    with open(path, 'r') as f:
        config = yaml.safe_load(f) or {}

    if not isinstance(config, dict):
        print(f"Error: Config file must contain a mapping: {config_path}")
        sys.exit(1)

    # Validate required sections
    required = ['vcenter']
    missing = [r for r in required if r not in config]
    if missing:
        print(f"Error: Missing required config sections: {missing}")
        sys.exit(1)

    vcenter = config.get('vcenter') or {}
    missing = [k for k in ['host', 'username'] if not vcenter.get(k)]
    if missing:
        print(f"Error: Missing required vcenter settings: {missing}")
        sys.exit(1)

    for section in ['export', 'import']:
        config[section] = config.get(section) or {}
    return config


def resolve_password(vcenter_config: dict) -> str:
    """Password from config, then the VCENTER_PASSWORD variable, then a prompt."""
    if vcenter_config.get('password'):
        return vcenter_config['password']
    if os.environ.get(PASSWORD_ENV_VAR):
        return os.environ[PASSWORD_ENV_VAR]
    return getpass.getpass(f"Password for {vcenter_config.get('username')}: ")
