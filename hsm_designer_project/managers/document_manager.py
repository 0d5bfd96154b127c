# hsm_designer_project/managers/document_manager.py
import os
import logging
from typing import List, Optional, Tuple

from ..core.exceptions import DocumentFormatError
from ..core.hsm_ir import GraphNode, Transition, MachineProperties, LoadedMachine, default_machine_properties
from ..core.yaml_serializer import serialize_machine
from ..core.yaml_deserializer import deserialize_machine
from ..export_utils import generate_phoenix_yaml
from ..utils.id_counters import IdAllocator
from ..utils.config import (
    DOCUMENT_ENCODING, DEFAULT_DOCUMENT_NAME, DEFAULT_PHOENIX_EXPORT_NAME,
    PHOENIX_EXPORT_SUFFIX, RECOGNIZED_DOCUMENT_EXTENSIONS
)

logger = logging.getLogger(__name__)


class DocumentManager:
    """Opens, saves and exports state machine documents on disk."""

    def __init__(self):
        self.current_file_path: Optional[str] = None
        self.id_allocator = IdAllocator()

    def is_document_open(self) -> bool:
        return self.current_file_path is not None

    def new_document(self) -> LoadedMachine:
        """Starts an empty machine; ids and default names restart from 1."""
        self.current_file_path = None
        self.id_allocator.reset()
        logger.info("Started a new state machine document.")
        return LoadedMachine([], [], False, default_machine_properties())

    def load_file(self, file_path: str) -> LoadedMachine:
        try:
            with open(file_path, 'r', encoding=DOCUMENT_ENCODING) as f:
                content = f.read()
            loaded = deserialize_machine(content)
        except (IOError, OSError) as e:
            logger.error(f"Error opening file '{file_path}': {e}", exc_info=True)
            raise
        except DocumentFormatError as e:
            logger.error(f"Error parsing YAML file '{file_path}': {e}")
            raise

        self.id_allocator.reset()
        self.id_allocator.sync_with(loaded.nodes)
        self.current_file_path = file_path
        logger.info(f"Successfully loaded document: {file_path}")
        return loaded

    def save_file(self, nodes: List[GraphNode], edges: List[Transition], root_history: bool,
                  machine_properties: Optional[MachineProperties] = None,
                  file_path: Optional[str] = None) -> str:
        """
        Writes the machine, geometry included, to file_path or the current
        file. Returns the path written; it becomes the current file.
        """
        target_path = file_path or self.current_file_path or DEFAULT_DOCUMENT_NAME
        content = serialize_machine(nodes, edges, root_history, machine_properties, include_geometry=True)
        try:
            with open(target_path, 'w', encoding=DOCUMENT_ENCODING) as f:
                f.write(content)
        except (IOError, OSError) as e:
            logger.error(f"Error saving document to '{target_path}': {e}", exc_info=True)
            raise
        self.current_file_path = target_path
        logger.info(f"Document saved successfully to: {target_path}")
        return target_path

    def default_export_path(self) -> str:
        if not self.current_file_path:
            return DEFAULT_PHOENIX_EXPORT_NAME
        base, ext = os.path.splitext(self.current_file_path)
        if ext.lower() not in RECOGNIZED_DOCUMENT_EXTENSIONS:
            base = self.current_file_path
        return base + PHOENIX_EXPORT_SUFFIX

    def export_phoenix(self, nodes: List[GraphNode], edges: List[Transition],
                       file_path: Optional[str] = None) -> Tuple[str, List[str]]:
        """Writes the Phoenix export; returns (path_written, warnings)."""
        target_path = file_path or self.default_export_path()
        content, warnings = generate_phoenix_yaml(nodes, edges)
        try:
            with open(target_path, 'w', encoding=DOCUMENT_ENCODING) as f:
                f.write(content)
        except (IOError, OSError) as e:
            logger.error(f"Error exporting Phoenix YAML to '{target_path}': {e}", exc_info=True)
            raise
        logger.info(f"Phoenix export written to: {target_path}")
        return target_path, warnings
