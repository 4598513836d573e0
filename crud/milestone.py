"""
Repository for progress billing milestones and their photo documentation
"""

from typing import Dict, List, Optional, Sequence

from sqlalchemy import select

from crud.base import OwnedRepository
from database_models import MilestonePhoto, ProgressBillingMilestone


class MilestoneRepository(OwnedRepository):
    model = ProgressBillingMilestone

    async def list_milestones(self, user_id: int, project_id: Optional[int] = None) -> Sequence[ProgressBillingMilestone]:
        return await self.list(user_id, order_by=ProgressBillingMilestone.percentage, project_id=project_id)

    async def photos_by_milestone(self, milestone_ids: List[int]) -> Dict[int, List[MilestonePhoto]]:
        if not milestone_ids:
            return {}
        result = await self.db.execute(
            select(MilestonePhoto)
            .where(MilestonePhoto.milestone_id.in_(milestone_ids))
            .order_by(MilestonePhoto.captured_at.desc())
        )
        grouped: Dict[int, List[MilestonePhoto]] = {}
        for photo in result.scalars():
            grouped.setdefault(photo.milestone_id, []).append(photo)
        return grouped

    async def list_photos(self, milestone_id: int) -> Sequence[MilestonePhoto]:
        result = await self.db.execute(
            select(MilestonePhoto)
            .where(MilestonePhoto.milestone_id == milestone_id)
            .order_by(MilestonePhoto.captured_at.desc())
        )
        return result.scalars().all()

    async def create_photo(self, milestone_id: int, data: dict) -> MilestonePhoto:
        photo = MilestonePhoto(**data, milestone_id=milestone_id)
        self.db.add(photo)
        await self.db.flush()
        await self.db.refresh(photo)
        return photo

    async def delete_photo(self, photo_id: int, user_id: int) -> bool:
        """Delete a photo only when its milestone belongs to the user."""
        result = await self.db.execute(
            select(MilestonePhoto)
            .join(ProgressBillingMilestone, MilestonePhoto.milestone_id == ProgressBillingMilestone.id)
            .where(MilestonePhoto.id == photo_id, ProgressBillingMilestone.user_id == user_id)
        )
        photo = result.scalar_one_or_none()
        if photo is None:
            return False
        await self.db.delete(photo)
        await self.db.flush()
        return True
