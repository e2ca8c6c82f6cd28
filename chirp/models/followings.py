from django.db import models
from django.db.models import CASCADE
from django.utils.timezone import now as timezone_now
from typing_extensions import override

from chirp.models.users import UserProfile


class Following(models.Model):
    follower = models.ForeignKey(UserProfile, related_name="following", on_delete=CASCADE)
    followee = models.ForeignKey(UserProfile, related_name="followers", on_delete=CASCADE)
    date_created = models.DateTimeField(default=timezone_now)

    class Meta:
        unique_together = ("follower", "followee")

    @override
    def __str__(self) -> str:
        return f"{self.follower.email} follows {self.followee.email}"
