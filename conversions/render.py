"""
PGN -> animated GIF.

Parsing is python-chess; each position along the mainline becomes one Pillow
frame, and the frames are written as a looping GIF.
"""

from __future__ import annotations

import io

import chess
import chess.pgn
from django.conf import settings
from PIL import Image, ImageDraw, ImageFont

from .errors import ValidationError

GIF_CONTENT_TYPE = "image/gif"

LIGHT = (240, 217, 181)
DARK = (181, 136, 99)
LIGHT_MOVED = (205, 210, 106)
DARK_MOVED = (170, 162, 58)
WHITE_PIECE = (250, 250, 250)
BLACK_PIECE = (40, 40, 40)
OUTLINE = (20, 20, 20)


def parse_game(pgn_text: str) -> chess.pgn.Game:
    """Parse PGN text, rejecting empty input, parse errors and games without moves."""
    if not pgn_text or not isinstance(pgn_text, str) or not pgn_text.strip():
        raise ValidationError('Missing or invalid "pgnContent".')

    game = chess.pgn.read_game(io.StringIO(pgn_text))
    if game is None:
        raise ValidationError("No game found in PGN.")
    if game.errors:
        raise ValidationError(f"Invalid PGN: {game.errors[0]}")
    if game.next() is None:
        raise ValidationError("PGN contains no moves.")
    return game


def _square_origin(square: chess.Square, size: int, flipped: bool) -> tuple[int, int]:
    file, rank = chess.square_file(square), chess.square_rank(square)
    col, row = (7 - file, rank) if flipped else (file, 7 - rank)
    return col * size, row * size


def draw_board(board: chess.Board, *, size: int, flipped: bool = False,
               last_move: chess.Move | None = None, font=None) -> Image.Image:
    font = font or ImageFont.load_default(size=size // 2)
    img = Image.new("RGB", (size * 8, size * 8), LIGHT)
    draw = ImageDraw.Draw(img)
    moved = {last_move.from_square, last_move.to_square} if last_move else set()

    for square in chess.SQUARES:
        x0, y0 = _square_origin(square, size, flipped)
        light = (chess.square_file(square) + chess.square_rank(square)) % 2 == 1
        if square in moved:
            color = LIGHT_MOVED if light else DARK_MOVED
        else:
            color = LIGHT if light else DARK
        draw.rectangle([x0, y0, x0 + size - 1, y0 + size - 1], fill=color)

        piece = board.piece_at(square)
        if piece is None:
            continue
        pad = size // 8
        fill, ink = (WHITE_PIECE, BLACK_PIECE) if piece.color == chess.WHITE else (BLACK_PIECE, WHITE_PIECE)
        draw.ellipse([x0 + pad, y0 + pad, x0 + size - pad - 1, y0 + size - pad - 1], fill=fill, outline=OUTLINE)

        letter = piece.symbol().upper()
        left, top, right, bottom = draw.textbbox((0, 0), letter, font=font)
        tx = x0 + (size - (right - left)) / 2 - left
        ty = y0 + (size - (bottom - top)) / 2 - top
        draw.text((tx, ty), letter, fill=ink, font=font)

    return img


def render_frames(game: chess.pgn.Game, start: int = 0, end: int | None = None,
                  flipped: bool = False, size: int | None = None) -> list[Image.Image]:
    """One frame per position from ply ``start`` to ply ``end`` inclusive."""
    size = size or settings.CHESS_GIF_SQUARE_SIZE
    font = ImageFont.load_default(size=size // 2)
    moves = list(game.mainline_moves())
    end = len(moves) if end is None else min(end, len(moves))

    board = game.board()
    for move in moves[:start]:
        board.push(move)

    frames = [draw_board(board, size=size, flipped=flipped,
                         last_move=board.peek() if board.move_stack else None, font=font)]
    for move in moves[start:end]:
        board.push(move)
        frames.append(draw_board(board, size=size, flipped=flipped, last_move=move, font=font))
    return frames


def render_gif(game: chess.pgn.Game, start: int = 0, end: int | None = None,
               flipped: bool = False) -> bytes:
    frames = render_frames(game, start, end, flipped)
    frame_ms = settings.CHESS_GIF_FRAME_MS
    # hold the final position a little longer before looping
    durations = [frame_ms] * (len(frames) - 1) + [frame_ms * 3]

    buf = io.BytesIO()
    frames[0].save(
        buf,
        format="GIF",
        save_all=True,
        append_images=frames[1:],
        duration=durations,
        loop=0,
    )
    return buf.getvalue()
