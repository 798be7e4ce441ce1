from setuptools import find_packages, setup
from glob import glob

package_name = 'tool_change'

setup(
    name=package_name,
    version='0.1.0',
    packages=find_packages(exclude=['test']),
    data_files=[
        # Register this package with ament.
        ('share/ament_index/resource_index/packages', ['resource/' + package_name]),
        # Install the package manifest.
        ('share/' + package_name, ['package.xml']),
        # Offsets / motion limits and marker id → label mapping
        ('share/' + package_name, ['share/tool_change_params.yaml']),
        ('share/' + package_name, ['share/marker_id_config.yaml']),
        ('share/' + package_name + '/launch', glob('launch/*.launch.py')),
    ],
    install_requires=['setuptools', 'numpy', 'scipy', 'PyYAML'],
    extras_require={'test': ['pytest']},
    zip_safe=True,
    maintainer='erds',
    maintainer_email='erdie@qltyss.com',
    description='Fiducial-guided tool change: docks the arm at the tool wagon start and slot poses',
    license='Apache-2.0',
    tests_require=['pytest'],
    entry_points={
        'console_scripts': [
            'tool_change_server = tool_change.tool_change_server:main',
            'tool_change_client = tool_change.cli:main',
        ],
    },
)
