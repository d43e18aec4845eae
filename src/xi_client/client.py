"""Client for sending editor commands to the core.

Every method ends up as one of two calls on the transport:
- notify: fire-and-forget, returns once the message is handed off
- request: waits for the core's reply

Per-view commands are wrapped in an "edit" call:

    await client.scroll(view_id, 21, 80)
    # {"method":"edit","params":{"method":"scroll","params":[21,80],"view_id":"view-id-1"}}

Errors (see errors.py):
- SerializationError: params could not be converted; nothing was sent
- NotifyFailed: the transport refused a notification
- RequestFailed: no application-level reply (disconnect, timeout, bad reply)
- ErrorReturned: the core replied with an error payload
"""

from __future__ import annotations

import logging
import os
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pydantic import StrictStr, TypeAdapter, ValidationError

from .errors import ErrorReturned, NotifyFailed, RequestFailed, SerializationError
from .protocol.messages import RpcNotification, compose_edit_params, to_wire_value
from .structs import EditMethod, GestureType, ModifySelection, ViewId
from .transport import (
    CoreTransport,
    MockCoreTransport,
    create_mock_transport,
    create_stdio_transport,
)

logger = logging.getLogger(__name__)

_VIEW_ID = TypeAdapter(StrictStr)


@dataclass
class CoreClient:
    """Typed client for the core.

    Works with any CoreTransport implementation:
    - StdioCoreTransport: Launch the core as subprocess
    - MockCoreTransport: For testing

    Usage:
        transport = create_stdio_transport()
        async with CoreClient(transport) as client:
            await client.client_started()
            view_id = await client.new_view("notes.txt")
            await client.insert(view_id, "hello")
    """

    _transport: CoreTransport
    _owns_transport: bool = field(default=True)

    @property
    def transport(self) -> CoreTransport:
        """Access the underlying transport."""
        return self._transport

    @property
    def is_connected(self) -> bool:
        """Check if transport is connected."""
        return self._transport.is_connected

    async def connect(self) -> None:
        """Connect the transport."""
        await self._transport.connect()

    async def disconnect(self) -> None:
        """Disconnect the transport."""
        if self._owns_transport:
            await self._transport.disconnect()

    async def __aenter__(self) -> CoreClient:
        await self.connect()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.disconnect()

    def notifications(self) -> AsyncIterator[RpcNotification]:
        """Notifications sent by the core (update, scroll_to, def_style...)."""
        return self._transport.notifications()

    # =========================================================================
    # Dispatch
    # =========================================================================

    async def notify(self, method: str, params: Any) -> None:
        """Send a notification to the core.

        Most notifications the core supports already have a method on this
        class, so this should rarely be needed directly.

        Raises:
            SerializationError: If params cannot be represented on the wire
            NotifyFailed: If the transport could not hand off the message
        """
        logger.info(f">>> notification: method={method}, params={params}")
        value = to_wire_value(params)
        try:
            await self._transport.notify(method, value)
        except ConnectionError as e:
            raise NotifyFailed(method, str(e)) from e

    async def request(self, method: str, params: Any) -> Any:
        """Send a request to the core and return the reply's result.

        Raises:
            SerializationError: If params cannot be represented on the wire
            ErrorReturned: If the core replied with an error payload
            RequestFailed: If no reply came back (disconnect, timeout, bad reply)
        """
        logger.info(f">>> request: method={method}, params={params}")
        value = to_wire_value(params)
        try:
            response = await self._transport.request(method, value)
        except (ConnectionError, TimeoutError) as e:
            raise RequestFailed(method, str(e)) from e

        if response.is_error:
            raise ErrorReturned(response.error)
        return response.result

    async def edit_request(
        self,
        view_id: ViewId,
        method: str | Enum,
        params: Any | None = None,
    ) -> Any:
        """Send an "edit" request for one view.

        The envelope is built before anything is sent; a SerializationError
        means the transport was never touched.
        """
        envelope = compose_edit_params(view_id, method, params)
        return await self.request("edit", envelope)

    async def edit_notify(
        self,
        view_id: ViewId,
        method: str | Enum,
        params: Any | None = None,
    ) -> None:
        """Send an "edit" notification for one view.

        Most edit commands already have a method on this class, so this
        should rarely be needed directly.
        """
        envelope = compose_edit_params(view_id, method, params)
        await self.notify("edit", envelope)

    # =========================================================================
    # View, clipboard and history
    # =========================================================================

    async def scroll(self, view_id: ViewId, first_line: int, last_line: int) -> None:
        """Tell the core which lines are visible."""
        await self.edit_notify(view_id, EditMethod.SCROLL, [first_line, last_line])

    async def goto_line(self, view_id: ViewId, line: int) -> None:
        await self.edit_notify(view_id, EditMethod.GOTO_LINE, {"line": line})

    async def copy(self, view_id: ViewId) -> Any:
        """Copy the selection; returns the copied text (or None)."""
        return await self.edit_request(view_id, EditMethod.COPY)

    async def cut(self, view_id: ViewId) -> Any:
        """Cut the selection; returns the removed text (or None)."""
        return await self.edit_request(view_id, EditMethod.CUT)

    async def paste(self, view_id: ViewId, chars: str) -> None:
        await self.edit_notify(view_id, EditMethod.PASTE, {"chars": chars})

    async def undo(self, view_id: ViewId) -> None:
        await self.edit_notify(view_id, EditMethod.UNDO)

    async def redo(self, view_id: ViewId) -> None:
        await self.edit_notify(view_id, EditMethod.REDO)

    # =========================================================================
    # Search
    # =========================================================================

    async def find(
        self,
        view_id: ViewId,
        chars: str,
        case_sensitive: bool = False,
        regex: bool = False,
        whole_words: bool = False,
    ) -> None:
        """Set the search query for a view."""
        await self.edit_notify(
            view_id,
            EditMethod.FIND,
            {
                "chars": chars,
                "case_sensitive": case_sensitive,
                "regex": regex,
                "whole_words": whole_words,
            },
        )

    async def _find_other(
        self,
        view_id: ViewId,
        method: EditMethod,
        wrap_around: bool,
        allow_same: bool,
        modify_selection: ModifySelection,
    ) -> None:
        await self.edit_notify(
            view_id,
            method,
            {
                "wrap_around": wrap_around,
                "allow_same": allow_same,
                "modify_selection": modify_selection,
            },
        )

    async def find_next(
        self,
        view_id: ViewId,
        wrap_around: bool = True,
        allow_same: bool = False,
        modify_selection: ModifySelection = ModifySelection.SET,
    ) -> None:
        """Move to the next match of the current query."""
        await self._find_other(
            view_id, EditMethod.FIND_NEXT, wrap_around, allow_same, modify_selection
        )

    async def find_prev(
        self,
        view_id: ViewId,
        wrap_around: bool = True,
        allow_same: bool = False,
        modify_selection: ModifySelection = ModifySelection.SET,
    ) -> None:
        """Move to the previous match of the current query."""
        await self._find_other(
            view_id, EditMethod.FIND_PREVIOUS, wrap_around, allow_same, modify_selection
        )

    async def find_all(self, view_id: ViewId) -> None:
        await self.edit_notify(view_id, EditMethod.FIND_ALL)

    async def highlight_find(self, view_id: ViewId, visible: bool) -> None:
        await self.edit_notify(view_id, EditMethod.HIGHLIGHT_FIND, {"visible": visible})

    # =========================================================================
    # Movement
    # =========================================================================

    async def left(self, view_id: ViewId) -> None:
        await self.edit_notify(view_id, EditMethod.MOVE_LEFT)

    async def left_sel(self, view_id: ViewId) -> None:
        await self.edit_notify(view_id, EditMethod.MOVE_LEFT_AND_MODIFY_SELECTION)

    async def right(self, view_id: ViewId) -> None:
        await self.edit_notify(view_id, EditMethod.MOVE_RIGHT)

    async def right_sel(self, view_id: ViewId) -> None:
        await self.edit_notify(view_id, EditMethod.MOVE_RIGHT_AND_MODIFY_SELECTION)

    async def up(self, view_id: ViewId) -> None:
        await self.edit_notify(view_id, EditMethod.MOVE_UP)

    async def up_sel(self, view_id: ViewId) -> None:
        await self.edit_notify(view_id, EditMethod.MOVE_UP_AND_MODIFY_SELECTION)

    async def down(self, view_id: ViewId) -> None:
        await self.edit_notify(view_id, EditMethod.MOVE_DOWN)

    async def down_sel(self, view_id: ViewId) -> None:
        await self.edit_notify(view_id, EditMethod.MOVE_DOWN_AND_MODIFY_SELECTION)

    async def page_up(self, view_id: ViewId) -> None:
        await self.edit_notify(view_id, EditMethod.SCROLL_PAGE_UP)

    async def page_up_sel(self, view_id: ViewId) -> None:
        await self.edit_notify(view_id, EditMethod.PAGE_UP_AND_MODIFY_SELECTION)

    async def page_down(self, view_id: ViewId) -> None:
        await self.edit_notify(view_id, EditMethod.SCROLL_PAGE_DOWN)

    async def page_down_sel(self, view_id: ViewId) -> None:
        await self.edit_notify(view_id, EditMethod.PAGE_DOWN_AND_MODIFY_SELECTION)

    async def line_start(self, view_id: ViewId) -> None:
        await self.edit_notify(view_id, EditMethod.MOVE_TO_LEFT_END_OF_LINE)

    async def line_start_sel(self, view_id: ViewId) -> None:
        await self.edit_notify(view_id, EditMethod.MOVE_TO_LEFT_END_OF_LINE_AND_MODIFY_SELECTION)

    async def line_end(self, view_id: ViewId) -> None:
        await self.edit_notify(view_id, EditMethod.MOVE_TO_RIGHT_END_OF_LINE)

    async def line_end_sel(self, view_id: ViewId) -> None:
        await self.edit_notify(view_id, EditMethod.MOVE_TO_RIGHT_END_OF_LINE_AND_MODIFY_SELECTION)

    # =========================================================================
    # Selection and editing
    # =========================================================================

    async def select_all(self, view_id: ViewId) -> None:
        await self.edit_notify(view_id, EditMethod.SELECT_ALL)

    async def collapse_selections(self, view_id: ViewId) -> None:
        await self.edit_notify(view_id, EditMethod.COLLAPSE_SELECTIONS)

    async def delete(self, view_id: ViewId) -> None:
        """Delete forward (the Del key)."""
        await self.edit_notify(view_id, EditMethod.DELETE_FORWARD)

    async def delete_backward(self, view_id: ViewId) -> None:
        await self.edit_notify(view_id, EditMethod.DELETE_BACKWARD)

    async def backspace(self, view_id: ViewId) -> None:
        await self.delete_backward(view_id)

    async def insert_newline(self, view_id: ViewId) -> None:
        await self.edit_notify(view_id, EditMethod.INSERT_NEWLINE)

    async def insert_tab(self, view_id: ViewId) -> None:
        await self.edit_notify(view_id, EditMethod.INSERT_TAB)

    async def insert(self, view_id: ViewId, chars: str) -> None:
        """Insert text at every cursor."""
        await self.edit_notify(view_id, EditMethod.INSERT, {"chars": chars})

    async def char(self, view_id: ViewId, ch: str) -> None:
        """Insert typed text; same as insert(), kept for key-event handlers."""
        await self.insert(view_id, ch)

    async def debug_rewrap(self, view_id: ViewId) -> None:
        await self.edit_notify(view_id, EditMethod.DEBUG_REWRAP)

    async def debug_test_fg_spans(self, view_id: ViewId) -> None:
        await self.edit_notify(view_id, EditMethod.DEBUG_TEST_FG_SPANS)

    # =========================================================================
    # Mouse
    # =========================================================================

    async def click(self, view_id: ViewId, line: int, column: int) -> None:
        # Modifiers (0) and click count (1) are not forwarded yet
        await self.edit_notify(view_id, EditMethod.CLICK, [line, column, 0, 1])

    async def drag(self, view_id: ViewId, line: int, column: int) -> None:
        await self.edit_notify(view_id, EditMethod.DRAG, [line, column, 0])

    async def gesture(self, view_id: ViewId, line: int, column: int, ty: GestureType) -> None:
        """Send a mouse gesture at a position."""
        await self.edit_notify(
            view_id,
            EditMethod.GESTURE,
            {"line": line, "col": column, "ty": ty},
        )

    async def click_point_select(self, view_id: ViewId, line: int, column: int) -> None:
        await self.gesture(view_id, line, column, GestureType.POINT_SELECT)

    async def click_toggle_sel(self, view_id: ViewId, line: int, column: int) -> None:
        await self.gesture(view_id, line, column, GestureType.TOGGLE_SEL)

    async def click_range_select(self, view_id: ViewId, line: int, column: int) -> None:
        await self.gesture(view_id, line, column, GestureType.RANGE_SELECT)

    async def click_line_select(self, view_id: ViewId, line: int, column: int) -> None:
        # The core has no dedicated line gesture; a range select is what it accepts
        await self.gesture(view_id, line, column, GestureType.RANGE_SELECT)

    async def click_word_select(self, view_id: ViewId, line: int, column: int) -> None:
        await self.gesture(view_id, line, column, GestureType.WORD_SELECT)

    async def click_multi_line_select(self, view_id: ViewId, line: int, column: int) -> None:
        await self.gesture(view_id, line, column, GestureType.MULTI_LINE_SELECT)

    async def click_multi_word_select(self, view_id: ViewId, line: int, column: int) -> None:
        await self.gesture(view_id, line, column, GestureType.MULTI_WORD_SELECT)

    # =========================================================================
    # Lifecycle (outside the "edit" envelope)
    # =========================================================================

    async def new_view(self, file_path: str | os.PathLike[str] | None = None) -> ViewId:
        """Open a view, optionally on a file.

        Returns:
            The view id allocated by the core

        Raises:
            SerializationError: If the core's reply is not a view id
        """
        params: dict[str, Any] = {}
        if file_path is not None:
            params["file_path"] = os.fspath(file_path)

        result = await self.request("new_view", params)
        try:
            return ViewId(_VIEW_ID.validate_python(result))
        except ValidationError as e:
            raise SerializationError(f"Invalid view id in new_view reply: {result!r}") from e

    async def close_view(self, view_id: ViewId) -> None:
        await self.notify("close_view", {"view_id": view_id})

    async def save(self, view_id: ViewId, file_path: str | os.PathLike[str]) -> None:
        await self.notify("save", {"view_id": view_id, "file_path": os.fspath(file_path)})

    async def set_theme(self, theme_name: str) -> None:
        await self.notify("set_theme", {"theme_name": theme_name})

    async def client_started(
        self,
        config_dir: str | None = None,
        client_extra_dir: str | None = None,
    ) -> None:
        """Tell the core the client is ready; must be the first message sent.

        Args:
            config_dir: Directory holding the user's preferences
            client_extra_dir: Extra directory to load themes/syntaxes from
        """
        params: dict[str, Any] = {}
        if config_dir is not None:
            params["config_dir"] = config_dir
        if client_extra_dir is not None:
            params["client_extra_dir"] = client_extra_dir
        await self.notify("client_started", params)

    async def start_plugin(self, view_id: ViewId, name: str) -> None:
        await self.notify("start", {"view_id": view_id, "plugin_name": name})

    async def stop_plugin(self, view_id: ViewId, name: str) -> None:
        await self.notify("stop", {"view_id": view_id, "plugin_name": name})

    async def notify_plugin(
        self,
        view_id: ViewId,
        plugin: str,
        method: str,
        params: Any,
    ) -> None:
        """Forward a notification to a plugin running for a view."""
        await self.notify(
            "plugin_rpc",
            {
                "view_id": view_id,
                "receiver": plugin,
                "notification": {
                    "method": method,
                    "params": params,
                },
            },
        )


# Factory functions


def create_subprocess_client(
    command: list[str] | None = None,
    working_directory: str | None = None,
    env: dict[str, str] | None = None,
    timeout: float | None = 30.0,
) -> CoreClient:
    """Create a client that launches the core as subprocess.

    Args:
        command: Core command line (default: ["xi-core"])
        working_directory: CWD for subprocess
        env: Additional environment variables
        timeout: Seconds to wait for each reply (None waits forever)

    Returns:
        CoreClient with StdioCoreTransport
    """
    transport = create_stdio_transport(
        command=command,
        working_directory=working_directory,
        env=env,
        timeout=timeout,
    )
    return CoreClient(_transport=transport)


def create_test_client(
    transport: MockCoreTransport | None = None,
) -> CoreClient:
    """Create a client for testing.

    Args:
        transport: Pre-configured mock transport (creates new if None)

    Returns:
        CoreClient with MockCoreTransport
    """
    return CoreClient(
        _transport=transport or create_mock_transport(),
        _owns_transport=transport is None,
    )
