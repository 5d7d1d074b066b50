#!/usr/bin/env python3
"""
Contract ABIs shipped with the package.
"""

import json
import os
from typing import Dict, List

ABI_DIR = os.path.dirname(__file__)

ABI_FILES = {
    'nft': 'MyNFT.json',
    'factory': 'AuctionFactory.json',
    'auction': 'EnglishAuction.json',
}

_cache: Dict[str, List[dict]] = {}


def load_abi(name: str) -> List[dict]:
    """Load a contract ABI by short name ('nft', 'factory', 'auction')"""
    if name in _cache:
        return _cache[name]

    if name not in ABI_FILES:
        raise ValueError(f"Unknown contract type: {name}")

    with open(os.path.join(ABI_DIR, ABI_FILES[name]), 'r') as f:
        data = json.load(f)

    # Handle both formats: array or dict with 'abi' key (build artifact)
    if isinstance(data, dict) and 'abi' in data:
        abi = data['abi']
    elif isinstance(data, list):
        abi = data
    else:
        raise ValueError(f"Invalid ABI format for {name}")

    _cache[name] = abi
    return abi
