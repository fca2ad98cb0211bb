# Api-Scout — Core Logic Modules
#
# Sites, map surface and capture, the analysis lifecycle, the quota-guarded
# proxy core and the response formatter. HTTP plumbing lives in api/.

__all__ = ["build_workspace", "format_analysis"]


def __getattr__(name: str):
    if name == "build_workspace":
        from modules.forage_analysis import build_workspace
        return build_workspace
    if name == "format_analysis":
        from modules.formatter import format_analysis
        return format_analysis
    raise AttributeError(f"module 'modules' has no attribute {name!r}")
