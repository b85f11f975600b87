import uuid
from datetime import date, datetime
from typing import Literal, Optional
from pydantic import BaseModel, Field

# ---- Auth ----
class RegisterIn(BaseModel):
    username: str = Field(..., min_length=3, max_length=39, pattern=r"^[A-Za-z0-9_-]+$")
    password: str = Field(..., min_length=10, max_length=72)
    displayName: Optional[str] = Field(None, min_length=1, max_length=100)

class LoginIn(BaseModel):
    username: str
    password: str

class RefreshIn(BaseModel):
    refreshToken: Optional[str] = None

# ---- Users ----
class UserSummary(BaseModel):
    id: uuid.UUID
    username: str
    displayName: str
    avatarUrl: Optional[str] = None

class UserProfile(UserSummary):
    bio: Optional[str] = None
    createdAt: datetime
    vibeCount: int = 0
    followerCount: int = 0
    followingCount: int = 0
    isFollowing: bool = False
    isOnline: bool = False

class MeOut(UserSummary):
    bio: Optional[str] = None
    createdAt: datetime
    isAdmin: bool = False

class AuthOut(BaseModel):
    accessToken: str
    refreshToken: str
    user: MeOut

class UpdateProfileIn(BaseModel):
    displayName: Optional[str] = Field(None, min_length=1, max_length=100)
    bio: Optional[str] = Field(None, max_length=500)

class OnlineUser(UserSummary):
    lastActiveAt: datetime

class OnlineUsersOut(BaseModel):
    users: list[OnlineUser]

class UserPage(BaseModel):
    users: list[UserSummary]
    nextCursor: Optional[str] = None
    hasMore: bool

class FollowOut(BaseModel):
    success: bool = True
    following: bool

# ---- Vibes ----
class VibeOut(BaseModel):
    id: uuid.UUID
    user: UserSummary
    imageUrl: str
    caption: Optional[str] = None
    vibeDate: date
    createdAt: datetime
    reactionCount: int
    hasVibed: bool

class FeedPage(BaseModel):
    vibes: list[VibeOut]
    nextCursor: Optional[str] = None
    hasMore: bool

class TodayOut(BaseModel):
    hasPostedToday: bool
    vibe: Optional[VibeOut] = None

class CreateVibeIn(BaseModel):
    imageUrl: str = Field(..., min_length=1, max_length=1024)
    imageKey: str = Field(..., min_length=1, max_length=512)
    caption: Optional[str] = None

FeedSort = Literal["recent", "popular"]

# ---- Reactions ----
class ReactionResult(BaseModel):
    success: bool = True
    reactionCount: int

class ReactionOut(BaseModel):
    id: uuid.UUID
    user: UserSummary
    createdAt: datetime

class ReactionList(BaseModel):
    reactions: list[ReactionOut]
    total: int

# ---- Comments ----
class CommentIn(BaseModel):
    # length is checked by the route after trimming
    content: str

class CommentOut(BaseModel):
    id: uuid.UUID
    vibeId: uuid.UUID
    content: str
    createdAt: datetime
    user: UserSummary

class CommentPage(BaseModel):
    comments: list[CommentOut]
    nextCursor: Optional[str] = None
    hasMore: bool
    total: int

class CommentCreated(BaseModel):
    comment: CommentOut
    commentCount: int

class CommentDeleted(BaseModel):
    success: bool = True
    commentCount: int

# ---- Uploads ----
class PresignIn(BaseModel):
    fileName: str = Field(..., min_length=1, max_length=255)
    # contentType and fileSize are checked by the route so the 400 can list the allowed values
    contentType: str
    fileSize: int

class PresignOut(BaseModel):
    uploadUrl: str
    fileUrl: str
    key: str
    expiresIn: int

# ---- Streaks ----
class Milestone(BaseModel):
    days: int
    name: str

class NextMilestone(Milestone):
    daysRemaining: int

class StreakOut(BaseModel):
    currentStreak: int
    longestStreak: int
    lastPostDate: Optional[date] = None
    milestone: Optional[Milestone] = None
    nextMilestone: Optional[NextMilestone] = None

# ---- Admin ----
class AdminStats(BaseModel):
    totalUsers: int
    activeToday: int
    totalVibes: int
    vibesToday: int
    newUsersToday: int
    bannedUsers: int
    onlineNow: int

class AdminUser(UserSummary):
    isAdmin: bool
    createdAt: datetime
    lastActiveAt: Optional[datetime] = None
    deletedAt: Optional[datetime] = None
    vibeCount: int = 0
    followerCount: int = 0

class AdminUserPage(BaseModel):
    users: list[AdminUser]
    nextCursor: Optional[str] = None
    hasMore: bool

class BanIn(BaseModel):
    reason: str = Field("", max_length=500)

class SuccessOut(BaseModel):
    success: bool = True
