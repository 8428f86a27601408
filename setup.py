from setuptools import find_packages, setup

setup(
    name="feed-courier",
    version="0.1.0",
    description="Collect tech blog posts, filter them by relevance and deliver them to Telegram",
    python_requires=">=3.9",
    package_dir={"": "src"},
    packages=find_packages("src"),
    install_requires=[
        "requests>=2.32.0",
        "beautifulsoup4>=4.12.0",
        "feedparser>=6.0.11",
        "python-dateutil>=2.9.0",
        "fastapi>=0.110.0",
        "uvicorn>=0.29.0",
    ],
    extras_require={
        "dev": ["pytest>=8.2.0", "httpx>=0.27.0"],
    },
    entry_points={
        "console_scripts": [
            "feed-courier=feed_courier.cli:main",
        ]
    },
)
