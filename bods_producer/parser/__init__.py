"""
Parser Module - SIRI-VM XML extraction
======================================

Components:
- path_matcher: lxml XMLPullParser 기반 증분 경로 매처
- transformer: VehicleActivity 서브트리 → 레코드 변환
"""

from .path_matcher import MatchedNode, PathMatcher, iter_matches, parse_target_path
from .transformer import VehicleActivityRecord, transform

__all__ = [
    "MatchedNode",
    "PathMatcher",
    "iter_matches",
    "parse_target_path",
    "VehicleActivityRecord",
    "transform",
]
