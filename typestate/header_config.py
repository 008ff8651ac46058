"""
Generator Configuration - Single Source of Truth

Project metadata and the header written at the top of every generated
module. Modify the text here and regenerate all machines.

Usage:
    from typestate.header_config import GENERATOR_CONFIG
    print(GENERATOR_CONFIG['project']['name'])
"""

from . import __version__

GENERATOR_CONFIG = {
    # Project Information
    'project': {
        'name': 'typestate',
        'command': 'typestate-codegen',
        'version': __version__,
    },

    # Generated Code Header
    'generated_code_header': {
        'title': 'GENERATED CODE - DO NOT EDIT',
        'description': 'Regenerate from the machine definition instead of editing this file.',
        'runtime_module': 'typestate.runtime',
    },
}


def get_generator_line():
    """Get formatted generator name and version"""
    project = GENERATOR_CONFIG['project']
    return f"Generated by {project['command']} {project['version']}"


def get_generated_code_header(source: str) -> str:
    """
    Get the comment header for a generated machine module.

    Args:
        source: Path (or pseudo-name) of the machine definition

    Returns:
        Comment block, one '# ' line per entry, ending with a newline
    """
    header = GENERATOR_CONFIG['generated_code_header']

    return f"""# {header['title']}
#
# {get_generator_line()}
# From: {source}
#
# {header['description']}
# Runtime dependency: {header['runtime_module']}
"""
