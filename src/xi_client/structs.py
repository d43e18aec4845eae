"""Value types shared by the client and its callers."""

from __future__ import annotations

from enum import Enum
from typing import NewType

# Opaque token issued by the core for each open view (e.g. "view-id-1").
ViewId = NewType("ViewId", str)


class ModifySelection(str, Enum):
    """How a find command changes the current selection."""

    NONE = "none"
    SET = "set"
    ADD = "add"
    ADD_REMOVING_CURRENT = "add_removing_current"


class GestureType(str, Enum):
    """Mouse gestures understood by the core's "gesture" edit method."""

    POINT_SELECT = "point_select"
    TOGGLE_SEL = "toggle_sel"
    RANGE_SELECT = "range_select"
    WORD_SELECT = "word_select"
    MULTI_LINE_SELECT = "multi_line_select"
    MULTI_WORD_SELECT = "multi_word_select"


class EditMethod(str, Enum):
    """Inner method names sent inside an "edit" call.

    Method names stay plain strings on the wire; this enum only names the
    ones the client itself emits.
    """

    # View
    SCROLL = "scroll"
    GOTO_LINE = "goto_line"

    # Clipboard and history
    COPY = "copy"
    CUT = "cut"
    PASTE = "paste"
    UNDO = "undo"
    REDO = "redo"

    # Search
    FIND = "find"
    FIND_NEXT = "find_next"
    FIND_PREVIOUS = "find_previous"
    FIND_ALL = "find_all"
    HIGHLIGHT_FIND = "highlight_find"

    # Movement
    MOVE_LEFT = "move_left"
    MOVE_LEFT_AND_MODIFY_SELECTION = "move_left_and_modify_selection"
    MOVE_RIGHT = "move_right"
    MOVE_RIGHT_AND_MODIFY_SELECTION = "move_right_and_modify_selection"
    MOVE_UP = "move_up"
    MOVE_UP_AND_MODIFY_SELECTION = "move_up_and_modify_selection"
    MOVE_DOWN = "move_down"
    MOVE_DOWN_AND_MODIFY_SELECTION = "move_down_and_modify_selection"
    SCROLL_PAGE_UP = "scroll_page_up"
    PAGE_UP_AND_MODIFY_SELECTION = "page_up_and_modify_selection"
    SCROLL_PAGE_DOWN = "scroll_page_down"
    PAGE_DOWN_AND_MODIFY_SELECTION = "page_down_and_modify_selection"
    MOVE_TO_LEFT_END_OF_LINE = "move_to_left_end_of_line"
    MOVE_TO_LEFT_END_OF_LINE_AND_MODIFY_SELECTION = "move_to_left_end_of_line_and_modify_selection"
    MOVE_TO_RIGHT_END_OF_LINE = "move_to_right_end_of_line"
    MOVE_TO_RIGHT_END_OF_LINE_AND_MODIFY_SELECTION = (
        "move_to_right_end_of_line_and_modify_selection"
    )

    # Selection
    SELECT_ALL = "select_all"
    COLLAPSE_SELECTIONS = "collapse_selections"

    # Editing
    DELETE_FORWARD = "delete_forward"
    DELETE_BACKWARD = "delete_backward"
    INSERT = "insert"
    INSERT_NEWLINE = "insert_newline"
    INSERT_TAB = "insert_tab"

    # Mouse
    CLICK = "click"
    DRAG = "drag"
    GESTURE = "gesture"

    # Debugging aids
    DEBUG_REWRAP = "debug_rewrap"
    DEBUG_TEST_FG_SPANS = "debug_test_fg_spans"
