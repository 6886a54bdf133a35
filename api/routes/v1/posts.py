"""
api/routes/v1/posts.py -- Post CRUD routes for the TokenGate REST API.

Routes:
  POST   /posts/create        -- create a post owned by the caller (201)
  GET    /posts               -- paginated list of the caller's posts
  GET    /posts/{post_id}     -- one of the caller's posts
  PATCH  /posts/{post_id}/update
  DELETE /posts/{post_id}/delete

Every route requires a live session, and every query is scoped to the
authenticated user id. Someone else's post id answers 404, exactly like a
missing one.
"""

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from api.models import ErrorDetail, MessageResponse, PostCreate, PostResponse, PostsResponse, PostUpdate
from auth.dependencies import get_current_user_id, require_session
from posts.models import Post
from posts.store import PostStore

# Router-level dependency: every route below needs an authenticated session.
router = APIRouter(dependencies=[Depends(require_session)])


def _not_found(post_id: int) -> HTTPException:
    return HTTPException(
        status_code=404,
        detail=ErrorDetail(code="post_not_found", message=f"Post {post_id} not found.").model_dump(),
    )


@router.post("/posts/create", response_model=PostResponse, status_code=201)
def create_post(
    request: Request,
    body: PostCreate,
    user_id: int = Depends(get_current_user_id),
) -> PostResponse:
    post_store: PostStore = request.app.state.post_store
    created = post_store.create(Post(user_id=user_id, title=body.title, body=body.body))
    return PostResponse.from_post(created)


@router.get("/posts", response_model=PostsResponse)
def list_posts(
    request: Request,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    user_id: int = Depends(get_current_user_id),
) -> PostsResponse:
    """Return one page of the caller's posts. has_next is true when more pages follow."""
    post_store: PostStore = request.app.state.post_store
    items, total = post_store.list_for_user(user_id, page=page, limit=limit)
    offset = (page - 1) * limit
    return PostsResponse(
        total_items=total,
        items=[PostResponse.from_post(p) for p in items],
        page=page,
        limit=limit,
        has_next=offset + len(items) < total,
    )


@router.get("/posts/{post_id}", response_model=PostResponse)
def get_post(request: Request, post_id: int, user_id: int = Depends(get_current_user_id)) -> PostResponse:
    post_store: PostStore = request.app.state.post_store
    post = post_store.get_for_user(post_id, user_id)
    if post is None:
        raise _not_found(post_id)
    return PostResponse.from_post(post)


@router.patch("/posts/{post_id}/update", response_model=PostResponse)
def update_post(
    request: Request,
    post_id: int,
    body: PostUpdate,
    user_id: int = Depends(get_current_user_id),
) -> PostResponse:
    """Replace the title and/or body of one of the caller's posts."""
    post_store: PostStore = request.app.state.post_store
    post = post_store.get_for_user(post_id, user_id)
    if post is None:
        raise _not_found(post_id)
    if body.title is not None:
        post.title = body.title
    if body.body is not None:
        post.body = body.body
    if not post_store.update(post):
        raise _not_found(post_id)
    return PostResponse.from_post(post_store.get_for_user(post_id, user_id))


@router.delete("/posts/{post_id}/delete", response_model=MessageResponse)
def delete_post(request: Request, post_id: int, user_id: int = Depends(get_current_user_id)) -> MessageResponse:
    post_store: PostStore = request.app.state.post_store
    if not post_store.delete_for_user(post_id, user_id):
        raise _not_found(post_id)
    return MessageResponse(message="Post deleted successfully")
