from setuptools import setup
import os

def read_requirements():
    """Reads requirements.txt into a list, dropping blank lines and comments."""
    reqs_file = os.path.join(os.path.dirname(__file__), 'requirements.txt')
    requirements = []
    with open(reqs_file, 'r', encoding='utf-8') as f:
        for raw in f:
            # Everything after '#' is a comment
            line = raw.split('#', 1)[0].strip()
            if line:
                requirements.append(line)
    return requirements

# Metadata (name, version, extras) lives in pyproject.toml.
# Dependencies are declared dynamic there and resolved from requirements.txt here.
setup(
    install_requires=read_requirements(),
)
