"""Build PeerTrack package."""
import setuptools

with open("README.md") as f:
    long_desc = f.read()

setuptools.setup(
    name="peertrack",
    version="0.1.0",
    author="PeerTrack Developers",
    description="Peer discovery and WebRTC signaling for content swarms",
    long_description=long_desc,
    long_description_content_type="text/markdown",
    packages=setuptools.find_packages(include=["peertrack", "peertrack.*"]),
    classifiers=[
        "Programming Language :: Python :: 3",
        "License :: OSI Approved :: Apache Software License",
        "Operating System :: OS Independent",
    ],
    python_requires=">=3.10",
    install_requires=[
        "click",
        "pydantic>=2",
        "pyjwt>=2",
        "quart>=0.19",
        "redis>=5.0.1",
        "tomli ; python_version<'3.11'",
        "tomli-w",
        "typing-extensions>=4.3.0 ; python_version<'3.11'",
        "uvicorn",
        "uvloop",
    ],
    extras_require={
        "dev": [
            "pytest>=7",
            "pytest-asyncio>=0.23",
        ],
    },
    entry_points={
        "console_scripts": [
            "peertrack = peertrack.cli:cli",
        ],
    },
)
